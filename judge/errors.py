"""Standardized error handling for the execution service.

This module provides:
1. Custom exception classes for HTTP-facing and domain errors
2. Exception handlers for FastAPI
3. Standard error response models

Usage:
    from judge.errors import UnsupportedLanguageError

    # In services:
    raise UnsupportedLanguageError(language="cobol")

    # Register handlers in main.py:
    from judge.errors import register_exception_handlers
    register_exception_handlers(app)
"""

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str
    detail: str | None = None
    error_code: str | None = None
    context: dict[str, Any] | None = None


class APIError(Exception):
    """Base class for API errors."""

    status_code: int = 500
    error: str = "internal_error"
    detail: str = "An unexpected error occurred"

    def __init__(
        self,
        detail: str | None = None,
        error_code: str | None = None,
        **context: Any,
    ) -> None:
        self.detail = detail or self.__class__.detail
        self.error_code = error_code
        self.context = context if context else None
        super().__init__(self.detail)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.error,
            detail=self.detail,
            error_code=self.error_code,
            context=self.context,
        )


class NotFoundError(APIError):
    """Resource not found error (404)."""

    status_code = 404
    error = "not_found"
    detail = "Resource not found"


class BadRequestError(APIError):
    """Bad request error (400)."""

    status_code = 400
    error = "bad_request"
    detail = "Invalid request"


class UnauthorizedError(APIError):
    """Unauthorized error (401)."""

    status_code = 401
    error = "unauthorized"
    detail = "Authentication required"


class RateLimitedError(APIError):
    """Too many requests (429)."""

    status_code = 429
    error = "rate_limited"
    detail = "Too many requests, slow down"


class ServiceUnavailableError(APIError):
    """Service unavailable error (503)."""

    status_code = 503
    error = "service_unavailable"
    detail = "Service temporarily unavailable"


class DatabaseError(APIError):
    """Database error (500)."""

    status_code = 500
    error = "database_error"
    detail = "Database operation failed"


class UnsupportedLanguageError(BadRequestError):
    """Language id outside the closed registry. Raised before any workspace exists."""

    error_code = "UNSUPPORTED_LANGUAGE"

    def __init__(self, language: Any) -> None:
        self.language = language
        super().__init__(
            detail=f"Unsupported language: {language}. Only Java, C++, and Python are supported.",
            error_code="UNSUPPORTED_LANGUAGE",
            language=str(language),
        )


class ProblemNotFoundError(NotFoundError):
    """Problem id unknown to the catalog."""

    detail = "Problem not found"


class NoTestCasesError(BadRequestError):
    """Problem has no test cases configured."""

    detail = "No test cases configured for this problem"


class BackendUnavailableError(Exception):
    """An execution backend could not produce a result.

    Never leaves the executor chain; it only tells the chain to advance.
    """

    def __init__(self, backend: str, reason: str) -> None:
        self.backend = backend
        self.reason = reason
        super().__init__(f"{backend}: {reason}")


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors."""
    logger.warning(
        "API error: %s (status=%d, path=%s)",
        exc.detail,
        exc.status_code,
        request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPExceptions with standard format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=_status_to_error_type(exc.status_code),
            detail=str(exc.detail),
        ).model_dump(exclude_none=True),
    )


def _status_to_error_type(status_code: int) -> str:
    """Map HTTP status code to error type string."""
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "validation_error",
        429: "rate_limited",
        500: "internal_error",
        502: "bad_gateway",
        503: "service_unavailable",
        504: "gateway_timeout",
    }
    return mapping.get(status_code, "error")


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
