"""Text-generation capability.

Two providers: Anthropic (default, supports the tool-call variant) and
Gemini. Both fail before any network call when their key is missing, and
map vendor errors onto ``cartcompare.errors``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import anthropic
import httpx
import structlog
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from cartcompare.config import settings
from cartcompare.errors import (
    CapabilityConfigError,
    NoUsableOutputError,
    UpstreamAuthError,
    UpstreamTransportError,
    upstream_error_for_status,
)
from cartcompare.pipeline.prompts import REPORT_PRICES_TOOL, REPORT_PRICES_TOOL_NAME

log = structlog.get_logger("cartcompare.llm")

PROVIDERS = ("anthropic", "gemini")


@dataclass(frozen=True)
class ModelOutput:
    """Raw model output: free text, or a tool-call payload."""

    text: str | None = None
    payload: dict[str, Any] | None = None


class TextModel(Protocol):
    name: str

    async def generate(self, system_prompt: str, user_prompt: str) -> ModelOutput: ...


class AnthropicModel:
    """Claude via the Messages API.

    With ``use_tool=True`` the model is forced to call ``report_store_prices``
    and the tool input is returned as the payload.
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        use_tool: bool = False,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> None:
        api_key = settings.anthropic_api_key if api_key is None else api_key
        if not api_key:
            raise CapabilityConfigError("ANTHROPIC_API_KEY not set")
        self.model = model or settings.anthropic_model
        self.use_tool = use_tool
        self.max_tokens = max_tokens or settings.model_max_tokens
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=settings.model_timeout if timeout is None else timeout,
            max_retries=0,
        )

    async def generate(self, system_prompt: str, user_prompt: str) -> ModelOutput:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if self.use_tool:
            kwargs["tools"] = [REPORT_PRICES_TOOL]
            kwargs["tool_choice"] = {"type": "tool", "name": REPORT_PRICES_TOOL_NAME}

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APITimeoutError as e:
            log.warning("model_timeout", provider=self.name)
            raise UpstreamTransportError("Claude request timed out", capability="model") from e
        except anthropic.APIConnectionError as e:
            log.warning("model_connection_error", provider=self.name)
            raise UpstreamTransportError(
                f"Claude connection failed: {e}", capability="model"
            ) from e
        except anthropic.APIStatusError as e:
            log.error("model_api_error", provider=self.name, status=e.status_code)
            raise upstream_error_for_status("model", e.status_code, e.response.text) from e

        log.info(
            "model_tokens",
            provider=self.name,
            model=self.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

        if self.use_tool:
            payload = extract_tool_payload(response)
            if payload is None:
                log.warning("model_no_tool_call", provider=self.name)
                raise NoUsableOutputError(
                    f"Claude did not return a {REPORT_PRICES_TOOL_NAME} tool call"
                )
            return ModelOutput(payload=payload)

        text = ""
        for block in response.content:
            if hasattr(block, "text"):
                text += block.text
        return ModelOutput(text=text)


def extract_tool_payload(response: anthropic.types.Message) -> dict[str, Any] | None:
    for block in response.content:
        if block.type == "tool_use" and block.name == REPORT_PRICES_TOOL_NAME:
            return block.input  # type: ignore[return-value]
    return None


class GeminiModel:
    """Gemini via google-genai, asking for a JSON response body."""

    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> None:
        api_key = settings.google_ai_api_key if api_key is None else api_key
        if not api_key:
            raise CapabilityConfigError("GOOGLE_AI_API_KEY not set")
        self.model = model or settings.gemini_model
        self.max_tokens = max_tokens or settings.model_max_tokens
        timeout_s = settings.model_timeout if timeout is None else timeout
        self._client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_s * 1000)),
        )

    async def generate(self, system_prompt: str, user_prompt: str) -> ModelOutput:
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            response_mime_type="application/json",
            max_output_tokens=self.max_tokens,
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model, contents=user_prompt, config=config
            )
        except genai_errors.APIError as e:
            log.error("model_api_error", provider=self.name, status=e.code)
            if e.code in (401, 403):
                raise UpstreamAuthError(
                    f"Gemini request was not authorized ({e.code})",
                    capability="model",
                    status_code=e.code,
                    body=str(e.message or ""),
                ) from e
            raise UpstreamTransportError(
                f"Gemini request failed ({e.code})",
                capability="model",
                status_code=e.code,
                body=str(e.message or ""),
            ) from e
        except httpx.HTTPError as e:
            log.warning("model_transport_error", provider=self.name, error=type(e).__name__)
            raise UpstreamTransportError(
                f"Gemini request failed: {type(e).__name__}", capability="model"
            ) from e

        return ModelOutput(text=response.text or "")


def build_model(provider: str | None = None) -> TextModel:
    """Create the model for ``provider`` (defaults to DEFAULT_PROVIDER).

    Raises ``CapabilityConfigError`` for an unknown provider or a missing key.
    """
    provider = (provider or settings.default_provider).lower()
    if provider == "anthropic":
        return AnthropicModel(use_tool=settings.model_output_mode == "tool")
    if provider == "gemini":
        return GeminiModel()
    raise CapabilityConfigError(f"Unknown provider: {provider}")
