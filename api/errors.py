"""Global exception handlers for FastAPI.

Routes stay thin: services raise typed AuthError subclasses and the
handlers here turn them into status codes and envelopes. Anything
unexpected is logged with its traceback and answered with a generic 500.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import (
    AlreadyExistsError,
    AuthError,
    CodeExpiredError,
    CodeMismatchError,
    InputValidationError,
    InvalidCredentialsError,
    InvalidTokenError,
    PermissionDeniedError,
    RateLimitedError,
    UserInactiveError,
    UserNotFoundError,
)

logger = logging.getLogger(__name__)

# exception type -> (status, code, fixed client message or None to use str(exc))
AUTH_ERROR_RESPONSES = {
    InputValidationError: (400, ErrorCodes.VALIDATION_ERROR, None),
    AlreadyExistsError: (409, ErrorCodes.ALREADY_EXISTS, None),
    CodeExpiredError: (400, ErrorCodes.OTP_EXPIRED, "OTP not found or expired"),
    CodeMismatchError: (400, ErrorCodes.OTP_MISMATCH, "Invalid OTP"),
    InvalidCredentialsError: (401, ErrorCodes.INVALID_CREDENTIALS, "Invalid credentials"),
    InvalidTokenError: (401, ErrorCodes.INVALID_TOKEN, "Invalid or expired token"),
    UserInactiveError: (403, ErrorCodes.ACCOUNT_INACTIVE, "Account is deactivated"),
    PermissionDeniedError: (403, ErrorCodes.USER_REQUIRED, "User account required"),
    UserNotFoundError: (404, ErrorCodes.NOT_FOUND, "User not found"),
    RateLimitedError: (429, ErrorCodes.RATE_LIMITED, None),
}


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def auth_error_response(request: Request, exc: AuthError) -> JSONResponse:
    status, code, message = AUTH_ERROR_RESPONSES.get(
        type(exc), (400, ErrorCodes.INVALID_REQUEST, None)
    )
    headers = None
    field = None

    if isinstance(exc, InputValidationError):
        message, field = exc.message, exc.field
    elif isinstance(exc, RateLimitedError):
        message = f"Too many requests. Please wait {exc.retry_after_seconds} seconds."
        headers = {"Retry-After": str(exc.retry_after_seconds)}

    return JSONResponse(
        status_code=status,
        headers=headers,
        content=error_response(
            code, message or str(exc), field=field, request_id=_request_id(request)
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
        first = errors[0] if errors else {}
        location = [str(part) for part in first.get("loc", ()) if part != "body"]
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                first.get("msg", "Invalid request"),
                field=".".join(location) or None,
                request_id=_request_id(request),
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
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )
