"""Prompt assembly for the price comparison call.

Pure formatting: the same request and evidence always produce the same
prompt pair. The system prompt template is read once and cached.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cartcompare.config import settings
from cartcompare.models.contracts import EvidenceDocument

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

NO_EVIDENCE_MARKER = (
    "Web evidence: none provided. Do not guess prices: when you cannot support "
    'a price, set "unit_price" to null and say why in "notes".'
)

REPORT_PRICES_TOOL_NAME = "report_store_prices"


@dataclass(frozen=True)
class PromptPair:
    system: str
    user: str


_system_template_cache: str | None = None


def _load_system_template() -> str:
    global _system_template_cache  # noqa: PLW0603
    if _system_template_cache is None:
        _system_template_cache = (PROMPTS_DIR / "compare_system.txt").read_text(encoding="utf-8")
    return _system_template_cache


def build_system_prompt(currency: str | None = None) -> str:
    return _load_system_template().format(currency=currency or settings.currency).strip()


def format_evidence(docs: list[EvidenceDocument], excerpt_chars: int | None = None) -> str:
    """Render the evidence section of the user prompt.

    Excerpts are cut again to ``excerpt_chars``; this cap is separate from
    the per-page cap used while gathering.
    """
    if not docs:
        return NO_EVIDENCE_MARKER
    limit = settings.prompt_excerpt_chars if excerpt_chars is None else excerpt_chars
    lines = [
        "Web evidence (use ONLY these pages to support prices; "
        'anything else gets "unit_price": null):'
    ]
    for i, doc in enumerate(docs, start=1):
        lines.append(f"[{i}] URL: {doc.url}")
        lines.append(f"Excerpt: {doc.excerpt[:limit]}")
    return "\n".join(lines)


def build_user_prompt(
    address: str,
    radius_km: float,
    list_text: str,
    evidence: list[EvidenceDocument],
    excerpt_chars: int | None = None,
) -> str:
    return "\n".join(
        [
            f"Address: {address}",
            f"Radius_km: {radius_km:g}",
            f"User list (free text, commas optional): {list_text}",
            "",
            format_evidence(evidence, excerpt_chars),
        ]
    )


def build_prompt(
    address: str,
    radius_km: float,
    list_text: str,
    evidence: list[EvidenceDocument],
    currency: str | None = None,
) -> PromptPair:
    return PromptPair(
        system=build_system_prompt(currency),
        user=build_user_prompt(address, radius_km, list_text, evidence),
    )


# Tool schema for the structured-output variant. Mirrors StoreResult/BasketLine.
_BASKET_LINE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "brand": {"type": "string", "description": "Non-empty brand name"},
        "quantity": {"type": "number"},
        "unit_price": {
            "type": ["number", "null"],
            "description": "Price per unit, or null when not supported by evidence",
        },
        "line_total": {"type": "number"},
        "product_url": {"type": "string", "description": "Product page on the store site"},
        "source_domain": {"type": "string"},
        "size": {"type": ["string", "null"], "description": "Package size, e.g. '1.5L'"},
        "pack_qty": {"type": ["number", "null"]},
        "unit": {"type": ["string", "null"], "description": "Unit for ppu, e.g. 'kg', 'L'"},
        "ppu": {"type": ["number", "null"], "description": "Price per unit of measure"},
        "match_confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "substitution": {"type": "boolean"},
        "observed_at": {"type": ["string", "null"], "description": "ISO date the price was seen"},
        "in_stock": {"type": ["boolean", "null"]},
        "notes": {"type": "string"},
    },
    "required": ["name", "brand", "quantity", "unit_price", "product_url"],
}

REPORT_PRICES_TOOL: dict[str, Any] = {
    "name": REPORT_PRICES_TOOL_NAME,
    "description": (
        "Report the priced basket for 3-4 nearby stores, cheapest first. "
        "Use null for any price you cannot support."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "status": {"type": "string", "enum": ["ok"]},
            "results": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "store_name": {"type": "string"},
                        "address": {"type": "string"},
                        "distance_km": {"type": "number"},
                        "currency": {"type": "string"},
                        "total_price": {"type": "number"},
                        "match_overall": {"type": "number"},
                        "basket": {"type": "array", "items": _BASKET_LINE_SCHEMA},
                    },
                    "required": ["store_name", "currency", "basket"],
                },
            },
        },
        "required": ["status", "results"],
    },
}
