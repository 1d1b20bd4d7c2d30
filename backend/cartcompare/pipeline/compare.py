"""Price comparison pipeline: one request, start to finish.

1. Request validation (need_input before any external call)
2. Evidence gathering (only when use_web is set)
3. Prompt assembly
4. Model call
5. Output normalization
6. Validation, filtering and ranking

Stateless: everything a request touches is created for it and dropped after.
"""

from __future__ import annotations

import math
from typing import Any

import httpx
import structlog

from cartcompare.capabilities.fetch import HttpPageFetcher, PageFetcher
from cartcompare.capabilities.llm import PROVIDERS, TextModel, build_model
from cartcompare.capabilities.mock_stubs import mock_model, mock_page_fetcher, mock_search_client
from cartcompare.capabilities.search import BingSearchClient, SearchClient
from cartcompare.config import settings
from cartcompare.errors import CapabilityConfigError, CompareError
from cartcompare.models.contracts import (
    CompareRequest,
    ErrorResponse,
    EvidenceDocument,
    NeedInputResponse,
    NoResultsResponse,
    OkResponse,
    ResultEnvelope,
)
from cartcompare.pipeline.evidence import gather_evidence
from cartcompare.pipeline.normalize import normalize_model_output
from cartcompare.pipeline.prompts import build_prompt
from cartcompare.pipeline.queries import build_search_queries
from cartcompare.pipeline.validation import NO_RESULTS_MESSAGE, validate_and_rank

log = structlog.get_logger("cartcompare.compare")

UNEXPECTED_SHAPE_MESSAGE = "Unexpected shape from LLM"
_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})


def _text_field(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    return "" if value is None else str(value).strip()


def _radius_field(body: dict[str, Any]) -> float | None:
    value = body.get("radius_km")
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int | float):
        return None
    radius = float(value)
    return radius if math.isfinite(radius) and radius > 0 else None


def _flag_field(body: dict[str, Any], key: str) -> bool:
    value = body.get(key)
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return value is True


def parse_compare_request(body: Any) -> CompareRequest | NeedInputResponse:
    """Validate a raw request body.

    Returns a NeedInputResponse naming every missing or invalid field.
    """
    if not isinstance(body, dict):
        body = {}

    address = _text_field(body, "address")
    radius_km = _radius_field(body)
    list_text = _text_field(body, "list_text")
    provider = _text_field(body, "provider").lower() or None

    needed: list[str] = []
    if not address:
        needed.append("address")
    if radius_km is None:
        needed.append("radius_km")
    if not list_text:
        needed.append("list_text")
    if provider is not None and provider not in PROVIDERS:
        needed.append("provider")
    if needed or radius_km is None:
        return NeedInputResponse(needed=needed)

    return CompareRequest(
        address=address,
        radius_km=radius_km,
        list_text=list_text,
        use_web=_flag_field(body, "use_web"),
        provider=provider,
    )


async def run_comparison(
    request: CompareRequest,
    *,
    model: TextModel,
    search_client: SearchClient | None = None,
    fetcher: PageFetcher | None = None,
) -> OkResponse | NoResultsResponse:
    """Run the pipeline for a validated request.

    Raises ``CompareError`` for hard upstream failures and unparseable model
    output; every other outcome is returned as an envelope.
    """
    evidence: list[EvidenceDocument] = []
    if request.use_web:
        if search_client is None or fetcher is None:
            raise CapabilityConfigError("Web search requested but no search capability configured")
        queries = build_search_queries(request.list_text, request.address)
        evidence = await gather_evidence(queries, search_client, fetcher)

    prompt = build_prompt(request.address, request.radius_km, request.list_text, evidence)
    log.info(
        "model_call_start",
        provider=model.name,
        evidence_docs=len(evidence),
        user_prompt_chars=len(prompt.user),
    )
    output = await model.generate(prompt.system, prompt.user)

    normalized = normalize_model_output(output)
    if normalized.results is None or normalized.status != "ok":
        return NoResultsResponse(message=UNEXPECTED_SHAPE_MESSAGE, raw=normalized.raw)

    stores = validate_and_rank(normalized.results)
    if not stores:
        return NoResultsResponse(message=NO_RESULTS_MESSAGE)
    return OkResponse(results=stores)


async def compare_prices(body: Any) -> tuple[ResultEnvelope, int]:
    """Handle one raw request body. Returns the envelope and its HTTP status."""
    request = parse_compare_request(body)
    if isinstance(request, NeedInputResponse):
        log.info("comparison_need_input", needed=request.needed)
        return request, 400

    log.info(
        "comparison_start",
        radius_km=request.radius_km,
        use_web=request.use_web,
        provider=request.provider or settings.default_provider,
        mock=settings.use_mock_capabilities,
    )
    try:
        if settings.use_mock_capabilities:
            envelope = await run_comparison(
                request,
                model=mock_model(),
                search_client=mock_search_client(),
                fetcher=mock_page_fetcher(),
            )
        else:
            model = build_model(request.provider)
            async with httpx.AsyncClient() as http_client:
                search_client = BingSearchClient(http_client) if request.use_web else None
                envelope = await run_comparison(
                    request,
                    model=model,
                    search_client=search_client,
                    fetcher=HttpPageFetcher(http_client),
                )
    except CompareError as e:
        log.error("comparison_failed", kind=e.kind, error=e.message)
        return ErrorResponse(message=e.message, details=e.details), e.http_status

    if isinstance(envelope, OkResponse):
        log.info(
            "comparison_complete",
            stores=len(envelope.results),
            cheapest=envelope.results[0].total_price,
        )
    else:
        log.info("comparison_no_results", message=envelope.message)
    return envelope, 200
