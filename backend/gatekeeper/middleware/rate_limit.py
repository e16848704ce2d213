"""General request rate limiting middleware, keyed by client address."""

import logging

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from gatekeeper.api.errors import log_context, rate_limited_response
from gatekeeper.core.errors import RateLimitExceededError
from gatekeeper.core.i18n import request_locale
from gatekeeper.core.request_utils import get_client_ip
from gatekeeper.services.rate_limit import get_rate_limiter

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply the general fixed-window limit and report it in response headers."""

    def __init__(
        self,
        app: ASGIApp,
        enabled: bool = True,
        exclude_paths: list[str] | None = None,
    ):
        super().__init__(app)
        self.enabled = enabled
        self.exclude_paths = exclude_paths or [
            "/health",
            "/docs",
            "/redoc",
            "/openapi.json",
        ]

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.enabled or request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path
        if any(path == p or path.startswith(p + "/") for p in self.exclude_paths):
            return await call_next(request)

        client_ip = get_client_ip(request)
        decision = await get_rate_limiter().check_general(client_ip)

        if not decision.permitted:
            logger.warning(
                f"Rate limit exceeded for {client_ip} on {path}",
                extra=log_context(request, reason="rate_limited"),
            )
            return rate_limited_response(
                RateLimitExceededError(
                    retry_after=decision.retry_after,
                    reset_at=decision.reset_at,
                    limit=decision.limit,
                ),
                request_locale(request),
            )

        response = await call_next(request)

        # Endpoint-level limits (login) set their own headers
        for key, value in decision.headers.items():
            response.headers.setdefault(key, value)

        return response
