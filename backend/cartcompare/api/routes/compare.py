"""Price comparison endpoint: thin wrapper around the pipeline.

The body is read leniently (an unreadable body counts as empty) so that
missing fields always come back as ``need_input`` rather than a 422.
"""

import json

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from cartcompare.pipeline.compare import compare_prices

logger = structlog.get_logger()

router = APIRouter(tags=["compare"])


@router.post("/search")
async def search_prices(request: Request) -> JSONResponse:
    """Compare the user's basket across nearby stores."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.info("compare_body_unreadable")
        body = {}

    envelope, status_code = await compare_prices(body)
    return JSONResponse(status_code=status_code, content=envelope.model_dump(mode="json"))
