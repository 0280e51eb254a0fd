# app/core/exceptions.py
import logging
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    """Base error rendered as {"error", "details"?, "code"?}."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
    code: Optional[str] = None

    def __init__(
        self,
        message: Optional[str] = None,
        details: Any = None,
        code: Optional[str] = None,
        headers: Optional[dict] = None,
    ):
        super().__init__(
            status_code=self.status_code,
            detail=message or self.default_message,
            headers=headers,
        )
        self.details = details
        if code:
            self.code = code


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class InvalidState(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid state"


class PaymentIncomplete(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Payment not completed"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"

    def __init__(self, message: Optional[str] = None, details: Any = None, code: Optional[str] = None):
        super().__init__(message, details, code, headers={"WWW-Authenticate": "Bearer"})


class TokenExpired(Unauthorized):
    default_message = "Token expired."
    code = "token_expired"


class TokenInvalid(Unauthorized):
    default_message = "Invalid token."
    code = "token_invalid"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied. Insufficient permissions."


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class TooManyRequests(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests, please try again later."


class ExternalServiceError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "External service unavailable"


class Unimplemented(AppError):
    status_code = status.HTTP_501_NOT_IMPLEMENTED
    default_message = "Not implemented yet"


class ServiceUnavailable(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service unavailable"


def error_body(message: str, details: Any = None, code: Optional[str] = None) -> dict:
    body = {"error": message}
    if details is not None:
        body["details"] = jsonable_encoder(details)
    if code:
        body["code"] = code
    return body


# ---------- handlers ----------

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = error_body(
        str(exc.detail),
        getattr(exc, "details", None),
        getattr(exc, "code", None),
    )
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Validation failed", details),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error"),
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
