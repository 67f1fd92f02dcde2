"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from api.middleware import get_request_id
from auth.exceptions import (
    AccountNotFoundError,
    AlreadyAuthenticatedError,
    AuthError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotAuthenticatedError,
    RateLimitedError,
    SessionNotFoundError,
    UnknownProviderError,
    UpstreamProviderError,
    VerificationFailedError,
)
from clients.email_client import EmailGatewayError

logger = logging.getLogger(__name__)

# First match wins, so subclasses go before their bases.
_AUTH_ERROR_STATUS: list[tuple[type[AuthError], int, str]] = [
    (AlreadyAuthenticatedError, 400, ErrorCodes.ALREADY_AUTHENTICATED),
    (InvalidTokenError, 401, ErrorCodes.INVALID_TOKEN),
    (InvalidCredentialsError, 401, ErrorCodes.INVALID_CREDENTIALS),
    (AccountNotFoundError, 401, ErrorCodes.INVALID_CREDENTIALS),
    (VerificationFailedError, 401, ErrorCodes.VERIFICATION_FAILED),
    (NotAuthenticatedError, 401, ErrorCodes.NOT_AUTHENTICATED),
    (SessionNotFoundError, 401, ErrorCodes.SESSION_NOT_FOUND),
    (EmailAlreadyRegisteredError, 403, ErrorCodes.ALREADY_EXISTS),
    (RateLimitedError, 429, ErrorCodes.RATE_LIMITED),
    (UnknownProviderError, 404, ErrorCodes.NOT_FOUND),
]


def status_for(exc: AuthError) -> tuple[int, str]:
    """HTTP status and error code for an auth exception."""
    if isinstance(exc, UpstreamProviderError):
        if exc.caller_fault:
            return 400, ErrorCodes.OAUTH_ERROR
        return 500, ErrorCodes.OAUTH_PROVIDER_ERROR

    for exc_type, status_code, code in _AUTH_ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code, code

    return 500, ErrorCodes.INTERNAL_ERROR


def _message_for(exc: AuthError, status_code: int) -> str:
    if isinstance(exc, InvalidTokenError):
        # Expired and forged tokens look the same to clients.
        return "Invalid or expired token"
    if isinstance(exc, RateLimitedError):
        return f"Too many requests. Please wait {exc.retry_after_seconds} seconds."
    if status_code >= 500 and not isinstance(exc, UpstreamProviderError):
        return "An internal error occurred"
    return str(exc)


def auth_error_response(request: Request, exc: AuthError) -> JSONResponse:
    """Envelope response for an auth exception, with Retry-After on 429."""
    status_code, code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")

    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}

    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=error_response(
            code,
            _message_for(exc, status_code),
            request_id=get_request_id(request),
        ).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return auth_error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
            for err in errors
        )
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                message or "Invalid request",
                request_id=get_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = ErrorCodes.NOT_FOUND if exc.status_code == 404 else ErrorCodes.INVALID_REQUEST
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
            content=error_response(code, message, request_id=get_request_id(request)).model_dump(mode="json"),
        )

    @app.exception_handler(EmailGatewayError)
    async def email_gateway_error_handler(request: Request, exc: EmailGatewayError):
        logger.error(f"Email gateway failure on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content=error_response(
                ErrorCodes.SERVICE_UNAVAILABLE,
                "Email service unavailable. Please try again later.",
                request_id=get_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
                request_id=get_request_id(request),
            ).model_dump(mode="json"),
        )
