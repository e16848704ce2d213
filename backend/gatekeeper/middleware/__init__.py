"""Middleware module for the Gatekeeper backend."""

from gatekeeper.middleware.authentication import AuthenticationMiddleware
from gatekeeper.middleware.locale import LocaleMiddleware
from gatekeeper.middleware.rate_limit import RateLimitMiddleware
from gatekeeper.middleware.security_headers import SecurityHeadersMiddleware
from gatekeeper.middleware.store_cleanup import store_cleanup_loop

__all__ = [
    "AuthenticationMiddleware",
    "LocaleMiddleware",
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
    "store_cleanup_loop",
]
