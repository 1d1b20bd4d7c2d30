"""In-memory capability stubs.

Used by the test suite and by the API when USE_MOCK_CAPABILITIES is set, so
the whole comparison flow runs without search or model API keys.
"""

from __future__ import annotations

import json
from typing import Any

from cartcompare.capabilities.llm import ModelOutput
from cartcompare.models.contracts import SearchHit


class FakeSearchClient:
    """Returns canned hits per query (or ``default_hits``) and records calls."""

    def __init__(
        self,
        hits_by_query: dict[str, list[SearchHit]] | None = None,
        default_hits: list[SearchHit] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.hits_by_query = hits_by_query or {}
        self.default_hits = default_hits or []
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def search(self, query: str, count: int) -> list[SearchHit]:
        self.calls.append((query, count))
        if self.error is not None:
            raise self.error
        return list(self.hits_by_query.get(query, self.default_hits))[:count]


class FakePageFetcher:
    """Serves HTML from a dict; unknown URLs behave like failed fetches."""

    def __init__(self, pages: dict[str, str | None] | None = None) -> None:
        self.pages = pages or {}
        self.fetched: list[str] = []

    async def fetch(self, url: str) -> str | None:
        self.fetched.append(url)
        return self.pages.get(url)


class FakeModel:
    """Returns a fixed text or tool payload and records the prompts it saw."""

    name = "fake"

    def __init__(
        self,
        text: str | None = None,
        payload: dict[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.text = text
        self.payload = payload
        self.error = error
        self.prompts: list[tuple[str, str]] = []

    async def generate(self, system_prompt: str, user_prompt: str) -> ModelOutput:
        self.prompts.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        if self.payload is not None:
            return ModelOutput(payload=self.payload)
        return ModelOutput(text=self.text or "")


MOCK_RESULTS: dict[str, Any] = {
    "status": "ok",
    "results": [
        {
            "store_name": "Shufersal Deal Holon",
            "address": "Sokolov St 30, Holon",
            "distance_km": 0.8,
            "currency": "₪",
            "total_price": 0,
            "basket": [
                {
                    "name": "Mineral water 6 x 1.5L",
                    "brand": "Neviot",
                    "quantity": 1,
                    "unit_price": 14.9,
                    "product_url": "https://www.shufersal.co.il/online/he/p/P_7290000000001",
                    "notes": "",
                },
                {
                    "name": "Chicken breast 1kg",
                    "brand": "Of Tov",
                    "quantity": 1,
                    "unit_price": 39.9,
                    "product_url": "https://www.shufersal.co.il/online/he/p/P_7290000000002",
                },
            ],
        },
        {
            "store_name": "Rami Levy Holon",
            "address": "HaMerkava St 12, Holon",
            "distance_km": 2.4,
            "currency": "₪",
            "basket": [
                {
                    "name": "Mineral water 6 x 1.5L",
                    "brand": "Mey Eden",
                    "quantity": 1,
                    "unit_price": 12.9,
                    "product_url": "https://www.rami-levy.co.il/he/online/item/1001",
                },
                {
                    "name": "Chicken breast 1kg",
                    "brand": "",
                    "quantity": 1,
                    "unit_price": None,
                    "product_url": "",
                    "notes": "Not listed online",
                },
            ],
        },
    ],
}


def mock_model() -> FakeModel:
    return FakeModel(text=json.dumps(MOCK_RESULTS, ensure_ascii=False))


def mock_search_client() -> FakeSearchClient:
    return FakeSearchClient()


def mock_page_fetcher() -> FakePageFetcher:
    return FakePageFetcher()
