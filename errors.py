"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses: a generic
human-readable ``error`` plus a machine-readable ``code``.

Non-AppError exceptions are logged and returned as a bare 500 so no
internals leak to the client (Sentry captures them when configured).
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"


class ServiceUnavailableError(AppError):
    status_code = 503
    error_code = "service_unavailable"


# ── Captcha / account-token taxonomy ─────────────────────────────────────────


class InvalidCaptchaError(ValidationError):
    """Wrong, expired or already-used captcha answer."""

    error_code = "invalid_captcha"

    def __init__(self, message: str = "invalid or expired captcha", **kwargs: Any) -> None:
        super().__init__(message, field="captchaAnswer", **kwargs)


class InvalidOrExpiredTokenError(ValidationError):
    error_code = "invalid_or_expired_token"

    def __init__(self, message: str = "invalid or expired token", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class InvalidCredentialsError(AuthenticationError):
    error_code = "invalid_credentials"

    def __init__(self, message: str = "invalid credentials", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class EmailNotVerifiedError(ForbiddenError):
    error_code = "email_not_verified"

    def __init__(self, message: str = "email address not verified", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class EmailAlreadyRegisteredError(ConflictError):
    error_code = "email_already_registered"

    def __init__(self, message: str = "email already registered", **kwargs: Any) -> None:
        super().__init__(message, field="email", **kwargs)


class RenderingError(AppError):
    """Captcha image backend failure. Fatal for the generate request."""

    error_code = "rendering_error"

    def __init__(self, message: str = "could not generate captcha", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ChallengeStoreUnavailable(ServiceUnavailableError):
    """The shared challenge store could not be reached."""

    def __init__(
        self, message: str = "service temporarily unavailable", **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error(
                "request_failed",
                path=request.url.path,
                error_code=exc.error_code,
                error=str(exc.__cause__ or exc),
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        field = None
        if errors and errors[0].get("loc"):
            field = str(errors[0]["loc"][-1])
        err = ValidationError("invalid request body", field=field)
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "An internal server error occurred.", "code": "internal_error"},
        )
