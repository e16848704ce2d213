"""Per-request locale negotiation middleware."""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from gatekeeper.core.i18n import LOCALE_HEADER, request_locale


class LocaleMiddleware(BaseHTTPMiddleware):
    """Store the negotiated locale on ``request.state.locale`` and echo it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        locale = request_locale(request)
        response = await call_next(request)
        response.headers[LOCALE_HEADER] = locale
        return response
