"""Tests for access and refresh token issuance and verification."""

import time
import uuid
from datetime import timedelta

import jwt
import pytest

from gatekeeper.core import settings
from gatekeeper.core.errors import ExpiredCredentialError, MalformedCredentialError
from gatekeeper.services.tokens import (
    TokenKind,
    issue_access_token,
    issue_refresh_token,
    peek_claims,
    refresh_token_lifetime,
    verify_token,
)

SUBJECT = uuid.uuid4()


class TestAccessTokens:
    """Tests for short-lived access tokens."""

    def test_access_token_round_trip(self):
        """Verifying an access token returns its claims."""
        issued = issue_access_token(SUBJECT, "a@example.com", "admin")
        claims = verify_token(issued.token, TokenKind.ACCESS)

        assert claims.subject_id == str(SUBJECT)
        assert claims.kind == TokenKind.ACCESS
        assert claims.jti == issued.jti
        assert claims.email == "a@example.com"
        assert claims.role == "admin"

    def test_access_token_lives_fifteen_minutes(self):
        """Access tokens expire fifteen minutes after issuance."""
        issued = issue_access_token(SUBJECT, "a@example.com", None)
        assert issued.expires_in == 15 * 60

    def test_each_token_gets_unique_jti(self):
        """Two tokens issued back to back never share an identifier."""
        first = issue_access_token(SUBJECT, "a@example.com", None)
        second = issue_access_token(SUBJECT, "a@example.com", None)
        assert first.jti != second.jti

    def test_expired_access_token_rejected(self):
        """An expired token raises ExpiredCredentialError."""
        issued = issue_access_token(SUBJECT, "a@example.com", None, lifetime=timedelta(seconds=-5))
        with pytest.raises(ExpiredCredentialError):
            verify_token(issued.token, TokenKind.ACCESS)

    def test_tampered_token_rejected(self):
        """Changing a single character breaks the signature."""
        issued = issue_access_token(SUBJECT, "a@example.com", None)
        head, payload, signature = issued.token.split(".")
        flipped = "A" if signature[0] != "A" else "B"
        with pytest.raises(MalformedCredentialError):
            verify_token(f"{head}.{payload}.{flipped}{signature[1:]}", TokenKind.ACCESS)

    def test_token_signed_with_other_secret_rejected(self):
        """Tokens signed with a foreign key are malformed."""
        now = time.time()
        forged = jwt.encode(
            {
                "sub": str(SUBJECT),
                "iat": now,
                "exp": now + 60,
                "jti": "forged",
                "type": "access",
            },
            "some-other-secret-that-is-long-enough-123",
            algorithm="HS256",
        )
        with pytest.raises(MalformedCredentialError):
            verify_token(forged, TokenKind.ACCESS)

    def test_missing_claim_rejected(self):
        """A correctly signed token without a jti is malformed."""
        now = time.time()
        token = jwt.encode(
            {"sub": str(SUBJECT), "iat": now, "exp": now + 60, "type": "access"},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(MalformedCredentialError):
            verify_token(token, TokenKind.ACCESS)

    def test_garbage_rejected(self):
        """A value that is not a JWT at all is malformed."""
        with pytest.raises(MalformedCredentialError):
            verify_token("not-a-token", TokenKind.ACCESS)


class TestRefreshTokens:
    """Tests for device-bound refresh tokens."""

    def test_refresh_token_carries_device_binding(self):
        """Refresh claims include device id, class and family."""
        issued = issue_refresh_token(SUBJECT, "device-1", "android", "family-1")
        claims = verify_token(issued.token, TokenKind.REFRESH)

        assert claims.kind == TokenKind.REFRESH
        assert claims.device_id == "device-1"
        assert claims.device_type == "android"
        assert claims.token_family == "family-1"

    @pytest.mark.parametrize(
        ("device_type", "days"),
        [("web", 7), ("android", 90), ("ios", 90)],
    )
    def test_lifetime_depends_on_device_class(self, device_type, days):
        """Web refresh tokens live 7 days, mobile ones 90."""
        issued = issue_refresh_token(SUBJECT, "d", device_type, "f")
        assert issued.expires_in == days * 24 * 3600
        assert refresh_token_lifetime(device_type) == timedelta(days=days)

    def test_unknown_device_class_rejected(self):
        """There is no refresh lifetime for an unknown device class."""
        with pytest.raises(ValueError):
            refresh_token_lifetime("toaster")

    def test_refresh_token_not_accepted_as_access(self):
        """A refresh token presented where an access token is expected is malformed."""
        issued = issue_refresh_token(SUBJECT, "d", "web", "f")
        with pytest.raises(MalformedCredentialError):
            verify_token(issued.token, TokenKind.ACCESS)

    def test_access_token_not_accepted_as_refresh(self):
        """An access token presented for refresh is malformed."""
        issued = issue_access_token(SUBJECT, "a@example.com", None)
        with pytest.raises(MalformedCredentialError):
            verify_token(issued.token, TokenKind.REFRESH)


class TestPeekClaims:
    """Tests for unverified claim inspection."""

    def test_peek_reads_expired_token(self):
        """Peeking works on expired tokens."""
        issued = issue_access_token(SUBJECT, "a@example.com", None, lifetime=timedelta(seconds=-5))
        claims = peek_claims(issued.token)
        assert claims.jti == issued.jti
        assert claims.remaining_seconds() == 0

    def test_peek_rejects_garbage(self):
        with pytest.raises(MalformedCredentialError):
            peek_claims("garbage")
