"""CartCompare contract models.

Every shape that crosses a module boundary or leaves the API lives here.
The four response models are the only things a caller ever receives.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

NOTES_SEPARATOR = "; "

# === Request ===


class CompareRequest(BaseModel):
    """Validated inbound request (see ``parse_compare_request``)."""

    address: str
    radius_km: float = Field(gt=0)
    list_text: str
    use_web: bool = False
    provider: str | None = None


# === Evidence ===


class SearchHit(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    url: str
    snippet: str = ""
    display_url: str = Field(default="", alias="displayUrl")


class EvidenceDocument(BaseModel):
    url: str
    excerpt: str


# === Results ===


class BasketLine(BaseModel):
    """One item in a store's basket.

    ``notes`` is kept as a list of distinct strings and joined only when the
    model is serialized, so validation can append notes without duplicates.
    """

    name: str
    brand: str = ""
    quantity: float = 1
    unit_price: float | None = None
    line_total: float = 0
    product_url: str = ""
    source_domain: str = ""
    notes: list[str] = []

    # Extended fields (tool-call output contract)
    size: str | None = None
    pack_qty: float | None = None
    unit: str | None = None
    ppu: float | None = None
    match_confidence: float | None = Field(default=None, ge=0, le=1)
    substitution: bool | None = None
    observed_at: str | None = None
    in_stock: bool | None = None

    @field_validator("notes", mode="before")
    @classmethod
    def _split_notes(cls, value: Any) -> list[str]:
        return split_notes(value)

    @field_serializer("notes")
    def _join_notes(self, notes: list[str]) -> str:
        return NOTES_SEPARATOR.join(notes)

    def add_note(self, note: str) -> None:
        if note not in self.notes:
            self.notes.append(note)


class StoreResult(BaseModel):
    store_name: str
    address: str = ""
    distance_km: float | None = None
    currency: str
    basket: list[BasketLine] = []
    total_price: float = 0
    rank: int = 0
    match_overall: float | None = None


def split_notes(value: Any) -> list[str]:
    """Turn a notes value (string, list, or None) into distinct note strings."""
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(";")
    elif isinstance(value, list | tuple):
        parts = [str(v) for v in value if v is not None]
    else:
        parts = [str(value)]
    notes: list[str] = []
    for part in parts:
        part = part.strip()
        if part and part not in notes:
            notes.append(part)
    return notes


# === Response envelopes ===


class NeedInputResponse(BaseModel):
    status: Literal["need_input"] = "need_input"
    needed: list[str]


class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    message: str
    details: Any = None


class NoResultsResponse(BaseModel):
    status: Literal["no_results"] = "no_results"
    message: str | None = None
    raw: Any = None


class OkResponse(BaseModel):
    status: Literal["ok"] = "ok"
    results: list[StoreResult]


ResultEnvelope = OkResponse | NoResultsResponse | NeedInputResponse | ErrorResponse
