"""
Application error handlers.

Maps ``DeFiCopilotError`` subclasses to ``{"error": message}`` with the status
the error declares. Anything else becomes a 500 without internal details.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..errors import DeFiCopilotError, RateLimitExceeded

logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: str, details: Optional[Any] = None, headers=None) -> JSONResponse:
    body = {"error": error}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    """Register the application error handlers on ``app``."""

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limited(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
        logger.warning("Rate limited: %s", exc)
        return _error_response(
            exc.status_code,
            exc.message,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(DeFiCopilotError)
    async def handle_application_error(_request: Request, exc: DeFiCopilotError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("%s: %s", exc.code, exc.message)
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error: %s", type(exc).__name__)
        return _error_response(500, "Internal Server Error")
