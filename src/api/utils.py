"""API utility functions.

Shared helpers for route handlers: correlation ids, the request context
handed to the ceremony engine, and envelope responses.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from src.api.auth import _extract_bearer_token
from src.api.rate_limit import _get_real_client_ip
from src.exceptions import ErrorCode
from src.passkeys.models import RequestContext

logger = logging.getLogger(__name__)

# Context variable for correlation ID (async-safe)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Get the current request's correlation ID from context."""
    return _correlation_id.get()


def ensure_correlation_id() -> str:
    return get_correlation_id() or str(uuid.uuid4())


def get_request_origin(request: Request) -> str:
    """Origin the browser reported, else scheme://host[:port] of the request URL."""
    origin = request.headers.get("Origin")
    if origin:
        return origin
    return f"{request.url.scheme}://{request.url.netloc}"


def build_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=_get_real_client_ip(request),
        origin=get_request_origin(request),
        user_agent=request.headers.get("User-Agent"),
        bearer_token=_extract_bearer_token(request),
    )


def envelope_success(data: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=200, content={"success": True, "data": data})


def envelope_error(
    code: ErrorCode | str,
    message: str,
    status_code: int,
    *,
    correlation_id: str | None = None,
) -> JSONResponse:
    """Failure envelope, tagged with the correlation id header."""
    correlation_id = correlation_id or ensure_correlation_id()
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": str(code), "message": message}},
        headers={"X-Correlation-ID": correlation_id},
    )
