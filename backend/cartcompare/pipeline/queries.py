"""Search query building for the evidence step.

Queries are location-anchored and ordered: the evidence gatherer stops once
its document budget is spent, so earlier queries get more weight.
"""

from __future__ import annotations

import re

from cartcompare.config import settings

_LIST_SEPARATORS = re.compile(r"[,;\n]+")
_WHITESPACE = re.compile(r"\s+")


def split_list_items(list_text: str) -> list[str]:
    """Split a free-text shopping list on commas, semicolons and newlines."""
    return [item.strip() for item in _LIST_SEPARATORS.split(list_text) if item.strip()]


def location_hint(address: str) -> str:
    """Pick a short location hint from an address.

    "Holon, Sokolov 10" -> "Holon". Without a comma, the first word is used.
    """
    address = address.strip()
    if "," in address:
        for token in address.split(","):
            if token.strip():
                return token.strip()
    parts = address.split()
    return parts[0] if parts else ""


def _query(*parts: str) -> str:
    return _WHITESPACE.sub(" ", " ".join(parts)).strip()


def build_search_queries(
    list_text: str,
    address: str,
    max_items: int | None = None,
    max_queries: int | None = None,
) -> list[str]:
    """Build the ordered, deduplicated query list for one request."""
    max_items = settings.max_query_items if max_items is None else max_items
    max_queries = settings.max_queries if max_queries is None else max_queries
    hint = location_hint(address)

    candidates: list[str] = []
    for item in split_list_items(list_text)[:max_items]:
        candidates.append(_query(item, "price", hint))
        candidates.append(_query(item, "buy online", hint))
    candidates.append(_query("grocery prices near", hint))
    candidates.append(_query("price comparison near", hint))

    seen: set[str] = set()
    queries: list[str] = []
    for query in candidates:
        key = query.lower()
        if not query or key in seen:
            continue
        seen.add(key)
        queries.append(query)
        if len(queries) >= max_queries:
            break
    return queries
