"""Request-level errors raised by the comparison core.

Only these exceptions escape ``run_comparison``. Input problems become a
``need_input`` response and soft failures (a page that won't load) are
absorbed where they happen, so neither appears here.
"""

from __future__ import annotations

from typing import Any

DIAGNOSTIC_BODY_CHARS = 500


def truncate_body(body: str | bytes | None, limit: int = DIAGNOSTIC_BODY_CHARS) -> str:
    """Shorten an upstream response body for error details and logs."""
    if body is None:
        return ""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    return body if len(body) <= limit else body[:limit] + "…"


class CompareError(Exception):
    """Base class for errors that abort a comparison request."""

    kind = "internal"
    http_status = 500

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class CapabilityConfigError(CompareError):
    """A capability is missing credentials. Raised before any network call."""

    kind = "configuration"
    http_status = 500


class UpstreamError(CompareError):
    """A search or model call failed at the transport or auth level."""

    kind = "upstream"
    http_status = 502

    def __init__(
        self,
        message: str,
        *,
        capability: str,
        status_code: int | None = None,
        body: str | bytes | None = None,
    ) -> None:
        self.capability = capability
        self.status_code = status_code
        self.body = truncate_body(body)
        details: dict[str, Any] = {"capability": capability}
        if status_code is not None:
            details["status_code"] = status_code
        if self.body:
            details["body"] = self.body
        super().__init__(message, details=details)


class UpstreamAuthError(UpstreamError):
    """The upstream rejected our credentials (401/403)."""

    kind = "auth"


class UpstreamTransportError(UpstreamError):
    """Non-2xx response, timeout, or connection failure."""

    kind = "transport"


class NoUsableOutputError(CompareError):
    """The model answered but gave us nothing we can parse."""

    kind = "no_output"
    http_status = 502


def upstream_error_for_status(
    capability: str, status_code: int, body: str | bytes | None
) -> UpstreamError:
    """Map a non-2xx upstream status to the matching error class."""
    if status_code in (401, 403):
        return UpstreamAuthError(
            f"{capability} request was not authorized ({status_code})",
            capability=capability,
            status_code=status_code,
            body=body,
        )
    return UpstreamTransportError(
        f"{capability} request failed ({status_code})",
        capability=capability,
        status_code=status_code,
        body=body,
    )
