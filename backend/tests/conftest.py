"""Shared fixtures: ASGI test client and per-test settings isolation."""

from __future__ import annotations

import httpx
import pytest

from cartcompare.config import settings
from cartcompare.main import app


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Run every test without real credentials or mock mode unless it opts in."""
    monkeypatch.setattr(settings, "anthropic_api_key", "")
    monkeypatch.setattr(settings, "google_ai_api_key", "")
    monkeypatch.setattr(settings, "bing_search_key", "")
    monkeypatch.setattr(settings, "use_mock_capabilities", False)
    monkeypatch.setattr(settings, "default_provider", "anthropic")
    monkeypatch.setattr(settings, "model_output_mode", "text")
    monkeypatch.setattr(settings, "currency", "₪")
    yield


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
