# Gatekeeper Services
from gatekeeper.services.auth import AuthService
from gatekeeper.services.blacklist import TokenBlacklist, get_token_blacklist
from gatekeeper.services.devices import DeviceRegistry, TokenPair
from gatekeeper.services.permissions import PermissionResolver
from gatekeeper.services.rate_limit import FixedWindowRateLimiter, get_rate_limiter

__all__ = [
    "AuthService",
    "DeviceRegistry",
    "FixedWindowRateLimiter",
    "PermissionResolver",
    "TokenBlacklist",
    "TokenPair",
    "get_rate_limiter",
    "get_token_blacklist",
]
