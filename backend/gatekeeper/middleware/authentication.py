"""Bearer-token authentication middleware.

Every request to a protected path must carry ``Authorization: Bearer <token>``.
The token is checked against the blacklist, verified, and its subject's
status re-read from the database on each request, so deactivation and
"logout everywhere" take effect immediately. On success the identity is
attached to ``request.state.identity``.
"""

import logging

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from gatekeeper.api.errors import log_context, unauthorized_response
from gatekeeper.core.database import async_session_maker
from gatekeeper.core.i18n import request_locale
from gatekeeper.services.request_auth import PipelineFailure, authenticate_header

logger = logging.getLogger(__name__)

PROTECTED_PREFIXES = ["/api", "/auth"]

# Paths under a protected prefix that handle their own credentials
PUBLIC_PATHS = [
    "/auth/login",
    "/auth/register",
    "/auth/refresh",
]


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Authenticate requests to protected paths using JWT access tokens.

    - Token must be in: Authorization: Bearer <token>
    - Returns a generic 401 if the token is missing, revoked, invalid,
      expired, or its subject is no longer active
    """

    def __init__(
        self,
        app: ASGIApp,
        protected_prefixes: list[str] | None = None,
        public_paths: list[str] | None = None,
    ):
        super().__init__(app)
        self.protected_prefixes = protected_prefixes or PROTECTED_PREFIXES
        self.public_paths = public_paths or PUBLIC_PATHS

    def is_protected(self, path: str) -> bool:
        # Exact or segment-boundary matches only
        for public in self.public_paths:
            if path == public or path.startswith(public + "/"):
                return False
        return any(
            path == prefix or path.startswith(prefix + "/") for prefix in self.protected_prefixes
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # CORS preflight requests never carry credentials
        if request.method == "OPTIONS" or not self.is_protected(request.url.path):
            return await call_next(request)

        try:
            async with async_session_maker() as session:
                identity = await authenticate_header(request.headers.get("Authorization"), session)
        except PipelineFailure as e:
            logger.warning(
                f"Rejected {request.method} {request.url.path} at {e.stage.value}: {e}",
                extra=log_context(request, reason=e.reason, stage=e.stage.value),
            )
            return unauthorized_response(e, request_locale(request))

        request.state.identity = identity
        return await call_next(request)
