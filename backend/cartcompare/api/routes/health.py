"""Liveness and configuration health endpoints.

No upstream is probed: search and model calls cost money, so /health only
reports whether each capability has credentials configured. It always
returns 200 so load balancers keep routing.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from cartcompare.config import settings

router = APIRouter(tags=["health"])

VERSION = "0.1.0"


def _capability_status(key: str) -> str:
    if settings.use_mock_capabilities:
        return "mock"
    return "configured" if key else "missing_key"


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "CartCompare AI server is running."


@router.get("/health")
async def health_check() -> dict:
    """Report process liveness plus per-capability credential status."""
    return {
        "status": "ok",
        "version": VERSION,
        "environment": settings.environment,
        "default_provider": settings.default_provider,
        "anthropic": _capability_status(settings.anthropic_api_key),
        "gemini": _capability_status(settings.google_ai_api_key),
        "search": _capability_status(settings.bing_search_key),
    }
