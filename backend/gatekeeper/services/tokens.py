"""Token signing and verification.

Access tokens are short-lived and carry the subject's e-mail and role.
Refresh tokens are bound to one device and token family; their lifetime
depends on the device class and is fixed at issuance.
"""

import logging
import math
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

import jwt
from jwt.exceptions import PyJWTError

from gatekeeper.core import settings
from gatekeeper.core.errors import ExpiredCredentialError, MalformedCredentialError

logger = logging.getLogger(__name__)

_REQUIRED_CLAIMS = ["sub", "exp", "iat", "jti", "type"]


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Verified (or peeked) contents of a token."""

    subject_id: str
    kind: TokenKind
    jti: str
    issued_at: float
    expires_at: float
    email: str | None = None
    role: str | None = None
    device_id: str | None = None
    device_type: str | None = None
    token_family: str | None = None

    def remaining_seconds(self, now: float | None = None) -> int:
        """Whole seconds until expiry, rounded up and never negative."""
        now = time.time() if now is None else now
        return max(0, math.ceil(self.expires_at - now))


@dataclass(frozen=True)
class IssuedToken:
    token: str
    jti: str
    issued_at: float
    expires_at: float

    @property
    def expires_in(self) -> int:
        return max(0, int(round(self.expires_at - self.issued_at)))

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=UTC)


def _secret_for(kind: TokenKind) -> str:
    if kind == TokenKind.REFRESH:
        return settings.effective_refresh_secret_key
    return str(settings.jwt_secret_key)


def access_token_lifetime() -> timedelta:
    return timedelta(minutes=settings.access_token_ttl_minutes)


def refresh_token_lifetime(device_type: str) -> timedelta:
    """Refresh lifetime for a device class (web, android, ios)."""
    try:
        days = settings.refresh_token_ttl_days[device_type]
    except KeyError as e:
        raise ValueError(f"Unknown device type: {device_type}") from e
    return timedelta(days=days)


def _encode(kind: TokenKind, claims: dict[str, Any], lifetime: timedelta) -> IssuedToken:
    issued_at = time.time()
    expires_at = issued_at + lifetime.total_seconds()
    jti = uuid.uuid4().hex
    payload = {
        **claims,
        "iat": issued_at,
        "exp": expires_at,
        "jti": jti,
        "type": kind.value,
    }
    token = jwt.encode(payload, _secret_for(kind), algorithm=settings.jwt_algorithm)
    # PyJWT 2.x returns str; older type stubs may declare bytes
    return IssuedToken(token=str(token), jti=jti, issued_at=issued_at, expires_at=expires_at)


def issue_access_token(
    subject_id: uuid.UUID | str,
    email: str,
    role: str | None,
    *,
    lifetime: timedelta | None = None,
) -> IssuedToken:
    """Create a short-lived access token."""
    return _encode(
        TokenKind.ACCESS,
        {"sub": str(subject_id), "email": email, "role": role},
        lifetime if lifetime is not None else access_token_lifetime(),
    )


def issue_refresh_token(
    subject_id: uuid.UUID | str,
    device_id: str,
    device_type: str,
    token_family: str,
    *,
    lifetime: timedelta | None = None,
) -> IssuedToken:
    """Create a device-bound refresh token."""
    return _encode(
        TokenKind.REFRESH,
        {
            "sub": str(subject_id),
            "did": device_id,
            "dtype": device_type,
            "fam": token_family,
        },
        lifetime if lifetime is not None else refresh_token_lifetime(device_type),
    )


def _to_claims(payload: dict[str, Any]) -> TokenClaims:
    try:
        return TokenClaims(
            subject_id=str(payload["sub"]),
            kind=TokenKind(payload["type"]),
            jti=str(payload["jti"]),
            issued_at=float(payload["iat"]),
            expires_at=float(payload["exp"]),
            email=payload.get("email"),
            role=payload.get("role"),
            device_id=payload.get("did"),
            device_type=payload.get("dtype"),
            token_family=payload.get("fam"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedCredentialError(f"Token claims are malformed: {e}") from e


def verify_token(token: str, expected_kind: TokenKind) -> TokenClaims:
    """Verify signature, expiry and kind, and return the claims.

    Raises ExpiredCredentialError for an expired token and
    MalformedCredentialError for every other failure, including a token of
    the wrong kind.
    """
    try:
        payload = jwt.decode(
            token,
            _secret_for(expected_kind),
            algorithms=[settings.jwt_algorithm],
            options={"require": _REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError as e:
        raise ExpiredCredentialError("Token has expired") from e
    except PyJWTError as e:
        raise MalformedCredentialError(f"Invalid token: {e}") from e

    claims = _to_claims(payload)
    if claims.kind != expected_kind:
        raise MalformedCredentialError(
            f"Expected a {expected_kind.value} token, got {claims.kind.value}"
        )
    return claims


def peek_claims(token: str) -> TokenClaims:
    """Read claims WITHOUT verifying the signature.

    Only used to look up revocation state before verification; never trust
    the result for an authorization decision.
    """
    try:
        payload = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
            algorithms=[settings.jwt_algorithm],
        )
    except PyJWTError as e:
        raise MalformedCredentialError(f"Undecodable token: {e}") from e
    for claim in _REQUIRED_CLAIMS:
        if claim not in payload:
            raise MalformedCredentialError(f"Token is missing the {claim!r} claim")
    return _to_claims(payload)
