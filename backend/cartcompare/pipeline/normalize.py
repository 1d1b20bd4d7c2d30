"""Model output normalization.

Turns whatever the model returned into the canonical ``{status, results}``
envelope. Extraction failures (not JSON at all) raise; shapes we can't
recognize come back as ``NormalizedOutput(results=None)`` for the caller to
report as ``no_results``.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from cartcompare.capabilities.llm import ModelOutput
from cartcompare.errors import NoUsableOutputError, truncate_body

log = structlog.get_logger("cartcompare.normalize")

# Probed in this order when the value has no usable ``results`` key.
PROBE_KEYS: tuple[str, ...] = ("stores", "items", "data", "output")

# How many times a nested object under a probe key is re-coerced.
MAX_NESTING = 1


@dataclass
class NormalizedOutput:
    status: str
    results: list[dict[str, Any]] | None
    raw: Any = None


def extract_json_block(text: str) -> str:
    """Return the text between the first '{' and the last '}', else the trimmed text."""
    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return text[start : end + 1]
    return text.strip()


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```)."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    text = text.removeprefix("```")
    for lang in ("json", "JSON"):
        text = text.removeprefix(lang)
    return text.rsplit("```", 1)[0].strip()


def parse_model_text(text: str) -> Any:
    """Extract and parse the JSON payload of a text response.

    Clean JSON (including a bare array) parses directly; anything else is cut
    down to its outermost braces first. Raises ``NoUsableOutputError`` if the
    payload is not valid JSON.
    """
    unfenced = strip_code_fence(text)
    if unfenced.startswith(("{", "[")):
        try:
            return json.loads(unfenced)
        except json.JSONDecodeError:
            pass

    block = extract_json_block(unfenced)
    try:
        return json.loads(block)
    except json.JSONDecodeError as e:
        log.warning("model_output_invalid_json", error=str(e), raw=text)
        raise NoUsableOutputError(
            "LLM returned invalid JSON",
            details={"error": str(e), "raw": truncate_body(text)},
        ) from e


def _is_object_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, dict) for v in value)


# === Shape recognizers ===
# Each takes the parsed value and returns an envelope on match, else None.

Recognizer = Callable[[Any, int], "NormalizedOutput | None"]


def _canonical(value: Any, _depth: int) -> NormalizedOutput | None:
    if isinstance(value, dict) and value.get("status") == "ok" and _is_object_list(
        value.get("results")
    ):
        return NormalizedOutput(status="ok", results=value["results"])
    return None


def _bare_array(value: Any, _depth: int) -> NormalizedOutput | None:
    if _is_object_list(value):
        return NormalizedOutput(status="ok", results=value)
    return None


def _results_key(value: Any, _depth: int) -> NormalizedOutput | None:
    if isinstance(value, dict) and isinstance(value.get("results"), list):
        status = value.get("status") or "ok"
        results = [r for r in value["results"] if isinstance(r, dict)]
        return NormalizedOutput(status=str(status), results=results, raw=value)
    return None


def _probe_keys(value: Any, depth: int) -> NormalizedOutput | None:
    if not isinstance(value, dict):
        return None
    for key in PROBE_KEYS:
        candidate = value.get(key)
        if _is_object_list(candidate):
            return NormalizedOutput(status="ok", results=candidate)
        if isinstance(candidate, dict) and depth < MAX_NESTING:
            nested = coerce_envelope(candidate, depth + 1)
            if nested.results is not None:
                return nested
    return None


def _any_object_array(value: Any, _depth: int) -> NormalizedOutput | None:
    if not isinstance(value, dict):
        return None
    for key, candidate in value.items():
        if key in PROBE_KEYS:
            continue
        if candidate and _is_object_list(candidate):
            return NormalizedOutput(status="ok", results=candidate)
    return None


RECOGNIZERS: tuple[Recognizer, ...] = (
    _canonical,
    _bare_array,
    _results_key,
    _probe_keys,
    _any_object_array,
)


def coerce_envelope(value: Any, depth: int = 0) -> NormalizedOutput:
    """Reshape a parsed value into the canonical envelope.

    Tries each recognizer in ``RECOGNIZERS`` order; the first match wins.
    No match gives ``results=None`` with the value attached as ``raw``.
    """
    for recognizer in RECOGNIZERS:
        envelope = recognizer(value, depth)
        if envelope is not None:
            return envelope
    return NormalizedOutput(status="no_results", results=None, raw=value)


def normalize_model_output(output: ModelOutput) -> NormalizedOutput:
    """Normalize a text or tool-call model output."""
    if output.payload is not None:
        value: Any = output.payload
    else:
        value = parse_model_text(output.text or "")

    envelope = coerce_envelope(value)
    if envelope.results is None:
        log.warning("model_output_unrecognized_shape", value_type=type(value).__name__)
    elif envelope.status != "ok":
        log.info("model_output_non_ok_status", status=envelope.status)
    return envelope
