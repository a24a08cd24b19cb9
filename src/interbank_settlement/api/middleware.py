"""FastAPI middleware for request tracing and error handling.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors

Every error body has the same shape: {"error": <message>, "code": <CODE>}.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from interbank_settlement.domain.exceptions import (
    AuthError,
    DuplicateOperationError,
    ExpiryError,
    ForbiddenError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    MalformedAuthHeaderError,
    MalformedTokenError,
    NotFoundError,
    PayloadValidationError,
    SettlementError,
    SignatureError,
    UnknownSenderBankError,
    UpstreamError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# First match wins, so subclasses come before their bases.
ERROR_STATUS_CODES: tuple[tuple[type[SettlementError], int], ...] = (
    (MalformedTokenError, 500),
    (UnknownSenderBankError, 400),
    (NotFoundError, 404),
    (PayloadValidationError, 400),
    (SignatureError, 400),
    (MalformedAuthHeaderError, 400),
    (AuthError, 401),
    (InsufficientFundsError, 402),
    (ForbiddenError, 403),
    (DuplicateOperationError, 409),
    (InvalidStateTransitionError, 409),
    (ExpiryError, 409),
    (UpstreamError, 502),
)


def status_code_for(exc: SettlementError) -> int:
    """Map a domain exception to its HTTP status code."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 400


def error_response(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "code": code})


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except SettlementError as exc:
            status_code = status_code_for(exc)
            if status_code >= 500:
                logger.error("request.failed", error=exc.message, code=exc.code)
            else:
                logger.warning(
                    "request.rejected",
                    error=exc.message,
                    code=exc.code,
                    status_code=status_code,
                )
            return error_response(status_code, exc.message, exc.code)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return error_response(500, "An unexpected error occurred", "INTERNAL_ERROR")


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report body validation failures as 400 with the first problem."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    logger.warning("request.invalid", error=message)
    return error_response(400, message, "VALIDATION_ERROR")


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters: middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
