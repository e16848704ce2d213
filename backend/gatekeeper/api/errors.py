"""Mapping of the error taxonomy to HTTP responses.

Authentication failures all collapse to one generic, localized 401; the
concrete reason is logged with request context and never returned.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.requests import HTTPConnection

from gatekeeper.core.errors import (
    AuthError,
    DuplicateAccountError,
    InsufficientPermissionError,
    RateLimitExceededError,
    RoleNotFoundError,
    StoreUnavailableError,
)
from gatekeeper.core.i18n import LOCALE_HEADER, request_locale, translate
from gatekeeper.core.request_utils import get_client_ip

logger = logging.getLogger(__name__)

_GENERIC_401_KEYS = frozenset(
    {"auth.token.noToken", "auth.token.invalidToken", "auth.login.invalidCredentials"}
)


def _json(
    status_code: int,
    content: dict,
    locale: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={**(headers or {}), LOCALE_HEADER: locale},
    )


def log_context(conn: HTTPConnection, **extra: object) -> dict[str, object]:
    """Structured logging context for a request."""
    identity = getattr(conn.state, "identity", None)
    context: dict[str, object] = {
        "route": conn.url.path,
        "client_ip": get_client_ip(conn),
    }
    if identity is not None:
        context["subject_id"] = identity.subject_id
    context.update(extra)
    return context


def unauthorized_response(error: AuthError, locale: str) -> JSONResponse:
    key = error.message_key if error.message_key in _GENERIC_401_KEYS else "auth.token.invalidToken"
    return _json(
        status.HTTP_401_UNAUTHORIZED,
        {"detail": translate(key, locale)},
        locale,
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden_response(error: InsufficientPermissionError, locale: str) -> JSONResponse:
    return _json(
        status.HTTP_403_FORBIDDEN,
        {"detail": translate("auth.authorization.forbidden", locale, section=error.section, action=error.action)},
        locale,
    )


def rate_limited_response(error: RateLimitExceededError, locale: str) -> JSONResponse:
    reset_time = error.reset_at.isoformat()
    return _json(
        status.HTTP_429_TOO_MANY_REQUESTS,
        {
            "detail": translate(error.message_key, locale, retry_after=error.retry_after),
            "retryAfter": error.retry_after,
            "resetTime": reset_time,
        },
        locale,
        headers={
            "Retry-After": str(error.retry_after),
            "X-RateLimit-Limit": str(error.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": reset_time,
        },
    )


def service_unavailable_response(locale: str) -> JSONResponse:
    return _json(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        {"detail": translate("common.serviceUnavailable", locale)},
        locale,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for the access-control error taxonomy."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        logger.warning(
            f"Authentication failed: {exc}",
            extra=log_context(request, reason=exc.reason),
        )
        return unauthorized_response(exc, request_locale(request))

    @app.exception_handler(InsufficientPermissionError)
    async def handle_insufficient_permission(request: Request, exc: InsufficientPermissionError):
        logger.warning(
            f"Permission denied: {exc.section}:{exc.action}",
            extra=log_context(request, reason=exc.reason),
        )
        return forbidden_response(exc, request_locale(request))

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limited(request: Request, exc: RateLimitExceededError):
        logger.info(
            f"Rate limited: {exc}",
            extra=log_context(request, reason=exc.reason),
        )
        return rate_limited_response(exc, request_locale(request))

    @app.exception_handler(StoreUnavailableError)
    async def handle_store_unavailable(request: Request, exc: StoreUnavailableError):
        logger.error(
            f"Backing store unavailable: {exc}",
            extra=log_context(request, reason=exc.reason),
        )
        return service_unavailable_response(request_locale(request))

    @app.exception_handler(DuplicateAccountError)
    async def handle_duplicate_account(request: Request, exc: DuplicateAccountError):
        locale = request_locale(request)
        return _json(
            status.HTTP_409_CONFLICT,
            {"detail": translate("auth.register.duplicate", locale)},
            locale,
        )

    @app.exception_handler(RoleNotFoundError)
    async def handle_role_not_found(request: Request, exc: RoleNotFoundError):
        locale = request_locale(request)
        return _json(
            status.HTTP_404_NOT_FOUND,
            {"detail": translate("role.notFound", locale)},
            locale,
        )
