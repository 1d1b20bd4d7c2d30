"""Web search capability.

``BingSearchClient`` is the production implementation (Bing Web Search v7).
Any failure here is hard: the caller must not build a prompt from a partial
search.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from cartcompare.config import settings
from cartcompare.errors import (
    CapabilityConfigError,
    UpstreamTransportError,
    upstream_error_for_status,
)
from cartcompare.models.contracts import SearchHit

log = structlog.get_logger("cartcompare.search")


class SearchClient(Protocol):
    async def search(self, query: str, count: int) -> list[SearchHit]: ...


class BingSearchClient:
    """Bing Web Search over a shared httpx client."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str | None = None,
        endpoint: str | None = None,
        market: str | None = None,
        timeout: float | None = None,
    ) -> None:
        api_key = settings.bing_search_key if api_key is None else api_key
        if not api_key:
            raise CapabilityConfigError("BING_SEARCH_KEY not set")
        self._http = http_client
        self._api_key = api_key
        self._endpoint = endpoint or settings.bing_endpoint
        self._market = market or settings.search_market
        self._timeout = settings.search_timeout if timeout is None else timeout

    async def search(self, query: str, count: int) -> list[SearchHit]:
        params: dict[str, Any] = {"q": query, "count": count, "mkt": self._market}
        headers = {"Ocp-Apim-Subscription-Key": self._api_key}
        try:
            resp = await self._http.get(
                self._endpoint, params=params, headers=headers, timeout=self._timeout
            )
        except httpx.TimeoutException as exc:
            log.warning("search_timeout", query=query[:80])
            raise UpstreamTransportError(
                f"search timed out after {self._timeout}s", capability="search"
            ) from exc
        except httpx.RequestError as exc:
            log.warning("search_request_error", query=query[:80], error=type(exc).__name__)
            raise UpstreamTransportError(
                f"search request failed: {type(exc).__name__}", capability="search"
            ) from exc

        if not 200 <= resp.status_code < 300:
            log.error("search_failed", status=resp.status_code, query=query[:80])
            raise upstream_error_for_status("search", resp.status_code, resp.text)

        try:
            data = resp.json()
        except ValueError as exc:
            log.error("search_bad_body", status=resp.status_code, query=query[:80])
            raise UpstreamTransportError(
                "search returned a non-JSON body",
                capability="search",
                status_code=resp.status_code,
                body=resp.text,
            ) from exc
        return parse_bing_hits(data)[:count]


def parse_bing_hits(data: Any) -> list[SearchHit]:
    """Pull ``webPages.value`` out of a Bing response, skipping malformed hits."""
    if not isinstance(data, dict):
        return []
    pages = data.get("webPages") or {}
    raw_hits = pages.get("value") if isinstance(pages, dict) else None
    hits: list[SearchHit] = []
    for raw in raw_hits or []:
        if not isinstance(raw, dict) or not isinstance(raw.get("url"), str):
            continue
        hits.append(
            SearchHit(
                title=str(raw.get("name") or ""),
                url=raw["url"],
                snippet=str(raw.get("snippet") or ""),
                display_url=str(raw.get("displayUrl") or ""),
            )
        )
    return hits
