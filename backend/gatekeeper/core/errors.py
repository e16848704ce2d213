"""Exception taxonomy for the access-control core.

Every failure a request can hit is one of these. ``AuthError`` subclasses
all surface to clients as the same generic 401; the concrete class and its
``reason`` are only ever logged.
"""

from datetime import datetime


class GatekeeperError(Exception):
    """Base error for the access-control core."""

    reason = "error"


class AuthError(GatekeeperError):
    """Base authentication error. Always answered with a generic 401."""

    reason = "auth_failed"
    message_key = "auth.token.invalidToken"


class NoCredentialError(AuthError):
    """No bearer credential was presented, or the header is malformed."""

    reason = "no_credential"
    message_key = "auth.token.noToken"


class MalformedCredentialError(AuthError):
    """Bad signature, bad structure, or wrong token kind."""

    reason = "malformed_credential"


class ExpiredCredentialError(AuthError):
    """Token is past its expiry."""

    reason = "expired_credential"


class RevokedCredentialError(AuthError):
    """Token or its subject has been blacklisted."""

    reason = "revoked_credential"


class SubjectInactiveOrMissingError(AuthError):
    """Subject no longer exists, is deleted, or is deactivated."""

    reason = "subject_inactive_or_missing"


class ReplayedRefreshTokenError(AuthError):
    """Refresh token is not the current token of its device."""

    reason = "replayed_refresh_token"


class InvalidCredentialsError(AuthError):
    """Wrong e-mail or password at login."""

    reason = "invalid_credentials"
    message_key = "auth.login.invalidCredentials"


class InsufficientPermissionError(GatekeeperError):
    """Authenticated subject lacks the required section/action."""

    reason = "insufficient_permission"

    def __init__(self, section: str, action: str):
        super().__init__(f"Missing permission {section}:{action}")
        self.section = section
        self.action = action


class RateLimitExceededError(GatekeeperError):
    """Request count for a key exceeded its window allowance."""

    reason = "rate_limited"

    def __init__(
        self,
        retry_after: int,
        reset_at: datetime,
        limit: int,
        message_key: str = "rateLimit.exceeded",
    ):
        super().__init__(f"Rate limit exceeded; retry after {retry_after}s")
        self.retry_after = retry_after
        self.reset_at = reset_at
        self.limit = limit
        self.message_key = message_key


class StoreUnavailableError(GatekeeperError):
    """Backing key-value store could not be reached."""

    reason = "store_unavailable"


class DuplicateAccountError(GatekeeperError):
    """Registration attempted with an e-mail that is already in use."""

    reason = "duplicate_account"


class RoleNotFoundError(GatekeeperError):
    """Referenced role does not exist."""

    reason = "role_not_found"
