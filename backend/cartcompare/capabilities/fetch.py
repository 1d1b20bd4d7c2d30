"""Page fetch capability.

A page that can't be fetched is just missing evidence, so ``fetch`` never
raises: every failure is logged and returned as ``None``.
"""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

from cartcompare.config import settings

log = structlog.get_logger("cartcompare.fetch")

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0 Safari/537.36"
)
MAX_PAGE_BYTES = 2 * 1024 * 1024  # 2 MB


class PageFetcher(Protocol):
    async def fetch(self, url: str) -> str | None: ...


class HttpPageFetcher:
    """Fetch HTML pages with a shared httpx client.

    The body is streamed and reading stops at ``max_bytes``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout: float | None = None,
        max_bytes: int = MAX_PAGE_BYTES,
    ) -> None:
        self._http = http_client
        self._timeout = settings.fetch_timeout if timeout is None else timeout
        self._max_bytes = max_bytes

    async def fetch(self, url: str) -> str | None:
        try:
            async with self._http.stream(
                "GET",
                url,
                headers={"User-Agent": USER_AGENT, "Accept": "text/html,*/*;q=0.8"},
                timeout=self._timeout,
                follow_redirects=True,
            ) as resp:
                if not 200 <= resp.status_code < 300:
                    log.info("page_fetch_status", url=url[:100], status=resp.status_code)
                    return None

                content_type = resp.headers.get("content-type", "")
                if content_type and not content_type.startswith(("text/", "application/xhtml")):
                    log.info(
                        "page_fetch_skipped_content_type", url=url[:100], content_type=content_type
                    )
                    return None

                body = await read_capped(resp, self._max_bytes)
                encoding = resp.charset_encoding or "utf-8"
        except httpx.TimeoutException:
            log.info("page_fetch_timeout", url=url[:100])
            return None
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            log.info("page_fetch_error", url=url[:100], error=type(exc).__name__)
            return None

        try:
            return body.decode(encoding, errors="replace")
        except LookupError:
            return body.decode("utf-8", errors="replace")


async def read_capped(resp: httpx.Response, limit: int) -> bytes:
    """Read a streamed body, stopping once ``limit`` bytes are in hand."""
    chunks: list[bytes] = []
    size = 0
    async for chunk in resp.aiter_bytes():
        chunk = chunk[: limit - size]
        chunks.append(chunk)
        size += len(chunk)
        if size >= limit:
            log.info("page_fetch_truncated", url=str(resp.url)[:100], limit=limit)
            break
    return b"".join(chunks)
