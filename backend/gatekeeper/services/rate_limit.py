"""Fixed-window rate limiter.

Each key gets a counter that is incremented atomically on every call and
expires at the end of its window. Bursts of up to 2x the limit across a
window edge are accepted in exchange for one store round trip per request.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Optional

from gatekeeper.core import FailurePolicy, settings
from gatekeeper.core.errors import RateLimitExceededError, StoreUnavailableError
from gatekeeper.core.kv_store import KeyValueStore, StorePurpose, get_store

logger = logging.getLogger(__name__)

GENERAL_KEY_PREFIX = "ratelimit:general:"
LOGIN_KEY_PREFIX = "ratelimit:login:"


@dataclass(frozen=True)
class RateLimitDecision:
    permitted: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after: int

    @property
    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_at.isoformat(),
        }
        if not self.permitted:
            headers["Retry-After"] = str(self.retry_after)
        return headers

    def raise_if_denied(self, message_key: str = "rateLimit.exceeded") -> None:
        if not self.permitted:
            raise RateLimitExceededError(
                retry_after=self.retry_after,
                reset_at=self.reset_at,
                limit=self.limit,
                message_key=message_key,
            )


def general_key(client_ip: str) -> str:
    return f"{GENERAL_KEY_PREFIX}{client_ip}"


def login_key(client_ip: str, credential: str) -> str:
    """Login attempts are counted per client address and submitted credential."""
    return f"{LOGIN_KEY_PREFIX}{client_ip}:{credential.strip().lower()}"


class FixedWindowRateLimiter:
    """Counts requests per key in fixed windows."""

    _instance: Optional["FixedWindowRateLimiter"] = None
    _instance_lock: threading.Lock = threading.Lock()

    def __init__(
        self,
        store: KeyValueStore | None = None,
        failure_policy: FailurePolicy | None = None,
    ):
        self._store = store
        self.failure_policy = failure_policy or settings.rate_limit_failure_policy

    @classmethod
    def get_instance(cls) -> "FixedWindowRateLimiter":
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
            return get_store(StorePurpose.RATE_LIMIT)
        return self._store

    async def allow(self, key: str, window_seconds: int, max_count: int) -> RateLimitDecision:
        """Count one request against ``key`` and decide whether it may proceed.

        If the store is unreachable the failure policy applies: FAIL_OPEN
        permits the request, FAIL_SECURE denies it for a full window.
        """
        now = datetime.now(UTC)
        try:
            count, ttl = await self.store.incr_window(key, window_seconds)
        except StoreUnavailableError as e:
            permitted = self.failure_policy == FailurePolicy.FAIL_OPEN
            logger.warning(
                f"Rate limit store unavailable, {'allowing' if permitted else 'denying'} request: {e}",
                extra={"key": key, "reason": e.reason},
            )
            return RateLimitDecision(
                permitted=permitted,
                limit=max_count,
                remaining=max_count if permitted else 0,
                reset_at=now + timedelta(seconds=window_seconds),
                retry_after=0 if permitted else window_seconds,
            )

        ttl = ttl if ttl > 0 else window_seconds
        permitted = count <= max_count
        if not permitted:
            logger.info(
                f"Rate limit exceeded for {key}",
                extra={"key": key, "reason": "rate_limited", "count": count},
            )
        return RateLimitDecision(
            permitted=permitted,
            limit=max_count,
            remaining=max(0, max_count - count),
            reset_at=now + timedelta(seconds=ttl),
            retry_after=0 if permitted else ttl,
        )

    async def check_general(self, client_ip: str) -> RateLimitDecision:
        return await self.allow(
            general_key(client_ip),
            settings.rate_limit_window_seconds,
            settings.rate_limit_max_requests,
        )

    async def check_login(self, client_ip: str, credential: str) -> RateLimitDecision:
        return await self.allow(
            login_key(client_ip, credential),
            settings.rate_limit_window_seconds,
            settings.login_rate_limit_max_attempts,
        )


def get_rate_limiter() -> FixedWindowRateLimiter:
    """Get the rate limiter singleton."""
    return FixedWindowRateLimiter.get_instance()
