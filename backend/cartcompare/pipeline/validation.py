"""Result validation and ranking.

The model's numbers are never trusted as-is:

1. Each basket line gets price, brand and link checks. Bad prices become
   null (they never reach a total); bad links only earn a note.
2. Stores with no verifiable price at all are dropped.
3. Totals are recomputed from the surviving lines.
4. Stores are sorted cheapest first (stable) and ranked from 1.

Running the validator again over its own output changes nothing.
"""

from __future__ import annotations

import math
import re
import urllib.parse
from typing import Any

import structlog

from cartcompare.config import settings
from cartcompare.models.contracts import BasketLine, StoreResult, split_notes

log = structlog.get_logger("cartcompare.validation")

MIN_PRICE = 0.0  # exclusive
MAX_PRICE = 999.0  # exclusive
MIN_VALID_ITEMS = 1

GENERIC_BRAND = "Generic"
NOTE_INVALID_PRICE = "Price could not be verified, excluded from the total"
NOTE_GENERIC_BRAND = "Brand not specified, generic brand assumed"
NOTE_SUSPICIOUS_LINK = "Suspicious product link, check the price on the store website"

NO_RESULTS_MESSAGE = (
    "No store had a verifiable price for your list. "
    "Try widening the search radius or naming specific brands."
)

_PLACEHOLDER_HOSTS = frozenset({"", "example.com", "localhost", "127.0.0.1"})
_HEDGES = re.compile(r"price may vary|~|≈|\babout\b", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_DANGLING_PUNCT = re.compile(r"^[\s,;:.\-]+|[\s,;:\-]+$")


# === Field coercion ===


def _as_number(value: Any) -> float | None:
    """Return ``value`` as a finite float, or None. Strings and bools don't count."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_optional_text(value: Any) -> str | None:
    text = _as_text(value)
    return text or None


def _as_optional_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _as_quantity(value: Any) -> float:
    number = _as_number(value)
    if number is None or number <= 0:
        return 1
    return number


def _as_confidence(value: Any) -> float | None:
    number = _as_number(value)
    if number is None:
        return None
    return min(max(number, 0.0), 1.0)


# === Line checks ===


def is_valid_price(value: Any) -> bool:
    number = _as_number(value)
    return number is not None and MIN_PRICE < number < MAX_PRICE


def url_host(url: str) -> str:
    try:
        return (urllib.parse.urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def is_plausible_product_url(url: str) -> bool:
    """True for an http(s) URL with a host and a path beyond '/'."""
    try:
        parsed = urllib.parse.urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False
    return parsed.path.strip("/") != ""


def is_placeholder_domain(domain: str) -> bool:
    domain = domain.strip().lower().removeprefix("www.")
    return (
        domain in _PLACEHOLDER_HOSTS
        or domain.endswith(".example")
        or domain.endswith(".example.com")
    )


def clean_note(note: str) -> str:
    """Remove hedging words ("about", "~", ...) from a note."""
    text = _HEDGES.sub(" ", note)
    text = _WHITESPACE.sub(" ", text)
    return _DANGLING_PUNCT.sub("", text).strip()


def build_basket_line(raw: dict[str, Any]) -> BasketLine:
    """Build a BasketLine from a raw model dict, tolerating bad field types."""
    product_url = _as_text(raw.get("product_url") or raw.get("url"))
    unit_price = _as_number(raw.get("unit_price"))
    return BasketLine(
        name=_as_text(raw.get("name")) or "Unnamed item",
        brand=_as_text(raw.get("brand")),
        quantity=_as_quantity(raw.get("quantity")),
        # Out-of-range numbers are kept here so validate_line can note them
        unit_price=unit_price,
        line_total=_as_number(raw.get("line_total")) or 0,
        product_url=product_url,
        source_domain=_as_text(raw.get("source_domain")),
        notes=split_notes(raw.get("notes")),
        size=_as_optional_text(raw.get("size")),
        pack_qty=_as_number(raw.get("pack_qty")),
        unit=_as_optional_text(raw.get("unit")),
        ppu=_as_number(raw.get("ppu")),
        match_confidence=_as_confidence(raw.get("match_confidence")),
        substitution=_as_optional_bool(raw.get("substitution")),
        observed_at=_as_optional_text(raw.get("observed_at")),
        in_stock=_as_optional_bool(raw.get("in_stock")),
    )


def validate_line(line: BasketLine) -> bool:
    """Apply all line checks in place. Returns True if the price is valid."""
    line.notes = [n for n in (clean_note(n) for n in line.notes) if n]
    line.notes = list(dict.fromkeys(line.notes))

    host = url_host(line.product_url)
    if not line.source_domain and host:
        line.source_domain = host.removeprefix("www.")
    if not is_plausible_product_url(line.product_url) or is_placeholder_domain(
        host or line.source_domain
    ):
        line.add_note(NOTE_SUSPICIOUS_LINK)

    if not line.brand.strip():
        line.brand = GENERIC_BRAND
        line.add_note(NOTE_GENERIC_BRAND)

    price = line.unit_price
    if price is not None and is_valid_price(price):
        line.line_total = round(price * line.quantity, 2)
        return True

    line.add_note(NOTE_INVALID_PRICE)
    line.unit_price = None
    line.line_total = 0
    return False


def store_total(basket: list[BasketLine]) -> float:
    return round(
        sum(line.unit_price * line.quantity for line in basket if line.unit_price is not None),
        2,
    )


# === Store checks ===


def validate_store(raw: dict[str, Any]) -> StoreResult | None:
    """Validate one raw store. Returns None if it has too few valid prices."""
    raw_basket = raw.get("basket")
    if not isinstance(raw_basket, list):
        raw_basket = raw.get("items") if isinstance(raw.get("items"), list) else []

    basket: list[BasketLine] = []
    valid_count = 0
    for raw_line in raw_basket:
        if not isinstance(raw_line, dict):
            log.warning("basket_line_skipped", reason="not_an_object", data=repr(raw_line))
            continue
        line = build_basket_line(raw_line)
        if validate_line(line):
            valid_count += 1
        basket.append(line)

    store_name = _as_text(raw.get("store_name") or raw.get("name")) or "Unknown store"
    if valid_count < MIN_VALID_ITEMS:
        log.info("store_dropped", store=store_name, lines=len(basket), valid=valid_count)
        return None

    distance = _as_number(raw.get("distance_km"))
    return StoreResult(
        store_name=store_name,
        address=_as_text(raw.get("address")),
        distance_km=distance if distance is not None and distance >= 0 else None,
        currency=_as_text(raw.get("currency")) or settings.currency,
        basket=basket,
        total_price=store_total(basket),
        match_overall=_as_confidence(raw.get("match_overall")),
    )


def rank_stores(stores: list[StoreResult]) -> list[StoreResult]:
    """Sort cheapest first (stable on ties) and assign 1-based ranks."""
    ranked = sorted(stores, key=lambda s: s.total_price)
    for position, store in enumerate(ranked, start=1):
        store.rank = position
    return ranked


def validate_and_rank(raw_results: list[Any]) -> list[StoreResult]:
    """Validate every raw store, drop the unverifiable ones, and rank the rest."""
    stores: list[StoreResult] = []
    for raw in raw_results:
        if isinstance(raw, StoreResult):
            raw = raw.model_dump()
        if not isinstance(raw, dict):
            log.warning("store_skipped", reason="not_an_object", data=repr(raw))
            continue
        store = validate_store(raw)
        if store is not None:
            stores.append(store)

    ranked = rank_stores(stores)
    log.info(
        "results_validated",
        received=len(raw_results),
        kept=len(ranked),
        dropped=len(raw_results) - len(ranked),
    )
    return ranked
