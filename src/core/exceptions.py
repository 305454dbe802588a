"""
Application exceptions and the handlers that render them as JSON.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class StorageLimitError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Storage limit exceeded for your plan"


class MemberLimitError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Member limit reached for your plan"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class DuplicateRequestError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Duplicate request (idempotency)"


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Rate limit exceeded"


class GatewayError(AppError):
    """The payment provider rejected a request or could not be reached."""

    default_message = "Payment gateway error"

    def __init__(
        self, message: Optional[str] = None, result_code: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.result_code = result_code


class PaymentRecordError(AppError):
    """A charge was approved but could not be recorded locally."""

    default_message = "Payment could not be recorded"


class CacheError(AppError):
    default_message = "Cache error"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    fields = ", ".join(
        ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        for error in errors
    )
    message = f"Invalid or missing fields: {fields}" if fields else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"error": message}
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
