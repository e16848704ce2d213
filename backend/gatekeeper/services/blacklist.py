"""Token blacklist.

Two kinds of entries, both self-expiring:

- ``blacklist:token:<jti>`` revokes one token for its remaining lifetime
- ``blacklist:subject:<user_id>`` stores the time of a "logout everywhere";
  every token of that subject issued at or before it is revoked, tokens
  issued afterwards are not

Lookups never report "not revoked" when the store is down: they raise
``StoreUnavailableError`` and the caller applies its failure policy.
"""

import logging
import threading
import time
import uuid
from datetime import timedelta
from typing import Optional

from gatekeeper.core import FailurePolicy, settings
from gatekeeper.core.errors import RevokedCredentialError, StoreUnavailableError
from gatekeeper.core.kv_store import KeyValueStore, StorePurpose, get_store
from gatekeeper.services.tokens import TokenClaims

logger = logging.getLogger(__name__)

TOKEN_KEY_PREFIX = "blacklist:token:"
SUBJECT_KEY_PREFIX = "blacklist:subject:"

# Used when the remaining lifetime of a token cannot be determined
DEFAULT_TOKEN_TTL_SECONDS = 15 * 60


class TokenBlacklist:
    """Revocation store for individual tokens and whole subjects."""

    _instance: Optional["TokenBlacklist"] = None
    _instance_lock: threading.Lock = threading.Lock()

    def __init__(
        self,
        store: KeyValueStore | None = None,
        failure_policy: FailurePolicy | None = None,
    ):
        self._store = store
        self.failure_policy = failure_policy or settings.blacklist_failure_policy

    @classmethod
    def get_instance(cls) -> "TokenBlacklist":
        """Get the singleton instance (thread-safe)."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._instance_lock:
            cls._instance = None

    @property
    def store(self) -> KeyValueStore:
        if self._store is None:
            return get_store(StorePurpose.BLACKLIST)
        return self._store

    async def revoke(self, jti: str, ttl_seconds: int | None = None) -> None:
        """Blacklist a single token for ``ttl_seconds`` (its remaining lifetime)."""
        ttl = DEFAULT_TOKEN_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return
        await self.store.set(f"{TOKEN_KEY_PREFIX}{jti}", "1", ttl)
        logger.debug(f"Blacklisted token {jti} for {ttl}s")

    async def revoke_claims(self, claims: TokenClaims) -> None:
        """Blacklist a token for exactly its remaining lifetime.

        Tokens that have already expired are not stored.
        """
        remaining = claims.remaining_seconds()
        if remaining > 0:
            await self.revoke(claims.jti, remaining)

    async def revoke_all_for_subject(
        self, subject_id: uuid.UUID | str, ttl_seconds: int | None = None
    ) -> float:
        """Revoke every token of a subject issued up to now.

        The entry lives as long as the longest-lived token that could have
        been issued before it. Returns the revocation timestamp.
        """
        if ttl_seconds is None:
            ttl_seconds = int(timedelta(days=settings.max_refresh_token_ttl_days).total_seconds())
        revoked_at = time.time()
        await self.store.set(f"{SUBJECT_KEY_PREFIX}{subject_id}", repr(revoked_at), ttl_seconds)
        logger.info(
            "All tokens revoked for subject",
            extra={"subject_id": str(subject_id), "reason": "logout_all"},
        )
        return revoked_at

    async def is_revoked(self, jti: str, subject_id: str, issued_at: float) -> bool:
        """Check both the token entry and the subject entry.

        Raises StoreUnavailableError if the store cannot answer.
        """
        if await self.store.get(f"{TOKEN_KEY_PREFIX}{jti}") is not None:
            return True
        revoked_at = await self.store.get(f"{SUBJECT_KEY_PREFIX}{subject_id}")
        if revoked_at is None:
            return False
        try:
            return issued_at <= float(revoked_at)
        except ValueError:
            logger.warning(f"Corrupt subject revocation entry for {subject_id}: {revoked_at!r}")
            return True

    async def ensure_not_revoked(self, claims: TokenClaims) -> None:
        """Raise RevokedCredentialError if the token is revoked.

        When the store is unreachable the configured failure policy decides:
        FAIL_SECURE treats the token as revoked, FAIL_OPEN lets it through.
        """
        try:
            revoked = await self.is_revoked(claims.jti, claims.subject_id, claims.issued_at)
        except StoreUnavailableError as e:
            if self.failure_policy == FailurePolicy.FAIL_OPEN:
                logger.warning(
                    f"Blacklist unavailable, accepting token (fail open): {e}",
                    extra={"subject_id": claims.subject_id, "reason": e.reason},
                )
                return
            logger.error(
                f"Blacklist unavailable, rejecting token (fail secure): {e}",
                extra={"subject_id": claims.subject_id, "reason": e.reason},
            )
            raise RevokedCredentialError("Revocation state unavailable") from e
        if revoked:
            raise RevokedCredentialError("Token has been revoked")


def get_token_blacklist() -> TokenBlacklist:
    """Get the blacklist singleton."""
    return TokenBlacklist.get_instance()
