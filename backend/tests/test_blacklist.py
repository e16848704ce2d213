"""Tests for the token blacklist."""

import time
import uuid

import pytest

from gatekeeper.core import FailurePolicy
from gatekeeper.core.errors import RevokedCredentialError, StoreUnavailableError
from gatekeeper.core.kv_store import MemoryStore
from gatekeeper.services.blacklist import TokenBlacklist, get_token_blacklist
from gatekeeper.services.tokens import TokenClaims, TokenKind, issue_access_token, verify_token
from tests.helpers import FailingStore, FakeClock


def _claims(subject_id: str | None = None):
    issued = issue_access_token(subject_id or str(uuid.uuid4()), "a@example.com", "user")
    return verify_token(issued.token, TokenKind.ACCESS)


class TestTokenRevocation:
    """Tests for single-token revocation."""

    @pytest.mark.asyncio
    async def test_revoked_token_is_reported(self):
        """A revoked jti is reported as revoked."""
        blacklist = TokenBlacklist(store=MemoryStore())
        claims = _claims()

        assert not await blacklist.is_revoked(claims.jti, claims.subject_id, claims.issued_at)
        await blacklist.revoke_claims(claims)
        assert await blacklist.is_revoked(claims.jti, claims.subject_id, claims.issued_at)

    @pytest.mark.asyncio
    async def test_ensure_not_revoked_raises(self):
        blacklist = TokenBlacklist(store=MemoryStore())
        claims = _claims()
        await blacklist.revoke(claims.jti, 60)

        with pytest.raises(RevokedCredentialError):
            await blacklist.ensure_not_revoked(claims)

    @pytest.mark.asyncio
    async def test_entry_expires_with_token(self):
        """Blacklist entries disappear once the token would have expired anyway."""
        clock = FakeClock()
        blacklist = TokenBlacklist(store=MemoryStore(clock=clock))
        claims = _claims()

        await blacklist.revoke(claims.jti, 60)
        clock.advance(61)

        assert not await blacklist.is_revoked(claims.jti, claims.subject_id, claims.issued_at)

    @pytest.mark.asyncio
    async def test_fractional_lifetime_rounds_up(self):
        """The entry outlives a token whose remaining lifetime is not whole seconds."""
        clock = FakeClock()
        blacklist = TokenBlacklist(store=MemoryStore(clock=clock))
        claims = TokenClaims(
            subject_id=str(uuid.uuid4()),
            kind=TokenKind.ACCESS,
            jti="short-lived",
            issued_at=time.time(),
            expires_at=time.time() + 1.9,
        )

        await blacklist.revoke_claims(claims)
        clock.advance(1.5)

        with pytest.raises(RevokedCredentialError):
            await blacklist.ensure_not_revoked(claims)

    def test_remaining_seconds_rounds_up(self):
        claims = TokenClaims(
            subject_id="s", kind=TokenKind.ACCESS, jti="j", issued_at=0.0, expires_at=100.2
        )
        assert claims.remaining_seconds(now=99.0) == 2
        assert claims.remaining_seconds(now=100.0) == 1
        assert claims.remaining_seconds(now=101.0) == 0

    @pytest.mark.asyncio
    async def test_non_positive_ttl_not_stored(self):
        """Nothing is stored for a token that has no lifetime left."""
        store = MemoryStore()
        blacklist = TokenBlacklist(store=store)

        await blacklist.revoke("gone", 0)

        assert await store.get("blacklist:token:gone") is None

    @pytest.mark.asyncio
    async def test_other_tokens_unaffected(self):
        """Revoking one token leaves a sibling token valid."""
        blacklist = TokenBlacklist(store=MemoryStore())
        subject = str(uuid.uuid4())
        first, second = _claims(subject), _claims(subject)

        await blacklist.revoke_claims(first)

        await blacklist.ensure_not_revoked(second)


class TestSubjectRevocation:
    """Tests for revoking every token of a subject."""

    @pytest.mark.asyncio
    async def test_tokens_issued_before_are_revoked(self):
        blacklist = TokenBlacklist(store=MemoryStore())
        claims = _claims()

        await blacklist.revoke_all_for_subject(claims.subject_id)

        with pytest.raises(RevokedCredentialError):
            await blacklist.ensure_not_revoked(claims)

    @pytest.mark.asyncio
    async def test_tokens_issued_after_are_accepted(self):
        """A fresh login after "logout everywhere" works."""
        blacklist = TokenBlacklist(store=MemoryStore())
        subject = str(uuid.uuid4())

        revoked_at = await blacklist.revoke_all_for_subject(subject)

        assert not await blacklist.is_revoked("new-jti", subject, revoked_at + 1)
        assert await blacklist.is_revoked("old-jti", subject, revoked_at - 1)

    @pytest.mark.asyncio
    async def test_other_subjects_unaffected(self):
        blacklist = TokenBlacklist(store=MemoryStore())
        claims = _claims()

        await blacklist.revoke_all_for_subject(str(uuid.uuid4()))

        await blacklist.ensure_not_revoked(claims)

    @pytest.mark.asyncio
    async def test_corrupt_entry_treated_as_revoked(self):
        store = MemoryStore()
        blacklist = TokenBlacklist(store=store)
        subject = str(uuid.uuid4())
        await store.set(f"blacklist:subject:{subject}", "not-a-number", 60)

        assert await blacklist.is_revoked("jti", subject, time.time())


class TestStoreFailure:
    """Tests for the blacklist failure policy."""

    @pytest.mark.asyncio
    async def test_lookup_propagates_store_error(self):
        """is_revoked never answers "not revoked" when the store is down."""
        blacklist = TokenBlacklist(store=FailingStore())

        with pytest.raises(StoreUnavailableError):
            await blacklist.is_revoked("jti", "subject", time.time())

    @pytest.mark.asyncio
    async def test_fail_secure_rejects(self):
        blacklist = TokenBlacklist(store=FailingStore(), failure_policy=FailurePolicy.FAIL_SECURE)

        with pytest.raises(RevokedCredentialError):
            await blacklist.ensure_not_revoked(_claims())

    @pytest.mark.asyncio
    async def test_fail_open_accepts(self):
        store = FailingStore()
        blacklist = TokenBlacklist(store=store, failure_policy=FailurePolicy.FAIL_OPEN)

        await blacklist.ensure_not_revoked(_claims())

        assert store.calls == 1

    def test_default_policy_is_fail_secure(self):
        """The shared blacklist uses the configured policy, fail secure by default."""
        assert get_token_blacklist().failure_policy == FailurePolicy.FAIL_SECURE


class TestSingleton:
    """Tests for TokenBlacklist singleton."""

    def test_get_instance_returns_same_object(self):
        assert TokenBlacklist.get_instance() is TokenBlacklist.get_instance()

    def test_reset_instance(self):
        first = TokenBlacklist.get_instance()
        TokenBlacklist.reset_instance()
        assert TokenBlacklist.get_instance() is not first
