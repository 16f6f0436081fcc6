"""
Global middleware and connector-error → HTTP mapping.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from connectors.errors import (
    AuthenticationError,
    ConnectorError,
    ConnectorNotFoundError,
    InvalidConfigError,
    NetworkError,
    RateLimitExceededError,
    RetryExhaustedError,
    UnsupportedAuthError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

# Most specific first; MissingRefreshTokenError matches AuthenticationError
_STATUS_FOR_ERROR = [
    (InvalidConfigError, 422),
    (ConnectorNotFoundError, 404),
    (AuthenticationError, 401),
    (UnsupportedAuthError, 501),
    (RateLimitExceededError, 429),
    (RetryExhaustedError, 502),
    (UpstreamError, 502),
    (NetworkError, 503),
]


def status_for_error(exc: ConnectorError) -> int:
    for cls, code in _STATUS_FOR_ERROR:
        if isinstance(exc, cls):
            return code
    return 500


def register_middleware(app: FastAPI) -> None:
    """Attach app-level middleware and exception handlers."""

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.debug("%s %s — %.3fs", request.method, request.url.path, elapsed)
        return response

    @app.exception_handler(ConnectorError)
    async def connector_error_handler(request: Request, exc: ConnectorError):
        content = {
            "success": False,
            "error": exc.message,
            "error_type": type(exc).__name__,
            "connector_id": exc.connector_id,
        }
        if isinstance(exc, UpstreamError):
            content["upstream_status"] = exc.status
        if isinstance(exc, RetryExhaustedError):
            content["retry_count"] = exc.retry_count
        return JSONResponse(status_code=status_for_error(exc), content=content)
