"""
Unified exception hierarchy (single entry point)

- **Exception classes**: everything inherits `AppException(HTTPException)`, which keeps the HTTP
  `status_code` separate from the business `code` and carries extra detail in `data`.
- **OAuth errors**: provider lookup, token exchange, hook and logout-adapter failures.
  Some of them never reach the client: the session coordinator turns them into redirects.
- **Global handlers**: `register_exception_handlers` renders every error with
  `sso_gateway.common.response.error_response`.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from sso_gateway.common.response import error_response


class AppException(HTTPException):
    """Base application exception."""

    code: int
    data: Any

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        message: str = "Internal Server Error",
        *,
        code: int | None = None,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code = status_code if code is None else code
        self.data = data


class NotFoundException(AppException):
    """Resource not found (404)"""

    def __init__(self, message: str = "Resource not found", *, code: int | None = None, data: Any = None):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, message=message, code=code, data=data)


class BadRequestException(AppException):
    """Bad request (400)"""

    def __init__(self, message: str = "Bad request", *, code: int | None = None, data: Any = None):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, message=message, code=code, data=data)


class UnauthorizedException(AppException):
    """Unauthorized (401)"""

    def __init__(self, message: str = "Unauthorized", *, code: int | None = None, data: Any = None):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, message=message, code=code, data=data)


class InternalServerException(AppException):
    """Internal error (500)"""

    def __init__(self, message: str = "Internal Server Error", *, code: int | None = 1007, data: Any = None):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, message=message, code=code, data=data)


# OAuth flow errors


class ProviderNotFoundError(NotFoundException):
    """Unknown provider name (404, no side effects)."""

    def __init__(self, provider: str):
        super().__init__(f"OAuth provider '{provider}' not found", code=1004, data={"provider": provider})
        self.provider = provider


class ProviderConfigError(Exception):
    """Provider configuration could not be loaded."""


class TokenExchangeError(Exception):
    """Upstream token exchange or refresh failed."""

    def __init__(self, message: str, *, provider: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class HookError(Exception):
    """A lifecycle hook failed; the rest of the chain was skipped."""

    def __init__(self, stage: str, hook_name: str, cause: BaseException):
        super().__init__(f"{stage} hook '{hook_name}' failed: {cause}")
        self.stage = stage
        self.hook_name = hook_name
        self.cause = cause


class SessionStoreError(InternalServerException):
    """The session store could not persist a session (500)."""

    def __init__(self, message: str = "Session store unavailable"):
        super().__init__(message, code=1010)


class LogoutAdapterError(InternalServerException):
    """The session-store logout adapter rejected a logout notification (500)."""

    def __init__(self, error: Any):
        payload = error if isinstance(error, (dict, list)) else {"error": str(error), "error_type": type(error).__name__}
        super().__init__("Session store logout failed", code=1009, data=payload)


# Error response & global handlers


def create_error_response(*, status_code: int, code: int, message: str, data: Any = None) -> Response:
    """Build a unified error response."""
    return JSONResponse(
        status_code=status_code,
        content=error_response(message=message, code=code, data=data),
    )


async def app_exception_handler(request: Request, exc: AppException) -> Response:
    """Handle AppException."""
    return create_error_response(
        status_code=exc.status_code,
        code=getattr(exc, "code", exc.status_code),
        message=str(exc.detail),
        data=getattr(exc, "data", None),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    """Handle FastAPI/Starlette HTTPException that is not an AppException."""
    return create_error_response(
        status_code=exc.status_code,
        code=exc.status_code,
        message=str(exc.detail),
        data=getattr(exc, "data", None),
    )


def _format_validation_errors(errors: Iterable[Mapping[str, Any]]) -> List[dict[str, Any]]:
    formatted: List[dict[str, Any]] = []
    for err in errors:
        loc = err.get("loc", ())
        field_path = ".".join(str(x) for x in loc)
        formatted.append(
            {
                "field": field_path,
                "message": err.get("msg"),
                "type": err.get("type"),
            }
        )
    return formatted


async def request_validation_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle RequestValidationError / PydanticValidationError."""
    errors: List[dict[str, Any]] = []
    if isinstance(exc, (RequestValidationError, PydanticValidationError)):
        errors = _format_validation_errors(exc.errors())

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Request parameter validation failed",
        data={"validation_errors": errors} if errors else None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle uncaught exceptions (500)."""
    logger.exception("Unhandled exception: {}", exc)

    debug = bool(getattr(request.app.state, "debug", False))
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message=str(exc) if debug else "Internal Server Error",
        data={"error_type": type(exc).__name__} if debug else None,
    )


def register_exception_handlers(app: Any) -> None:
    """
    Register exception handlers on a FastAPI app.

    Typed as Any to keep this module free of app-level imports.
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
