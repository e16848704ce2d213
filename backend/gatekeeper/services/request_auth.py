"""Per-request authentication pipeline.

A request moves through these stages, and the first failing stage ends it:

    NO_CREDENTIAL -> CREDENTIAL_EXTRACTED -> BLACKLIST_CHECKED
        -> SIGNATURE_VERIFIED -> SUBJECT_STATUS_VERIFIED -> AUTHORIZED

Authorization against the permission matrix happens later, per route.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core.errors import AuthError, NoCredentialError
from gatekeeper.models import User
from gatekeeper.services.blacklist import TokenBlacklist, get_token_blacklist
from gatekeeper.services.subjects import get_active_subject
from gatekeeper.services.tokens import TokenClaims, TokenKind, peek_claims, verify_token

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class PipelineStage(str, Enum):
    NO_CREDENTIAL = "no_credential"
    CREDENTIAL_EXTRACTED = "credential_extracted"
    BLACKLIST_CHECKED = "blacklist_checked"
    SIGNATURE_VERIFIED = "signature_verified"
    SUBJECT_STATUS_VERIFIED = "subject_status_verified"
    AUTHORIZED = "authorized"


@dataclass(frozen=True)
class Identity:
    """Authenticated subject attached to the request."""

    user: User
    claims: TokenClaims

    @property
    def subject_id(self) -> str:
        return self.claims.subject_id

    @property
    def email(self) -> str:
        return self.user.email

    @property
    def role(self) -> str | None:
        return self.claims.role

    @property
    def role_names(self) -> list[str]:
        return self.user.role_names


class PipelineFailure(AuthError):
    """An AuthError annotated with the last stage the request reached."""

    def __init__(self, error: AuthError, stage: PipelineStage):
        super().__init__(str(error))
        self.error = error
        self.stage = stage
        self.reason = error.reason
        self.message_key = error.message_key


def extract_bearer(authorization: str | None) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise NoCredentialError("Missing or malformed Authorization header")
    token = authorization[len(BEARER_PREFIX) :].strip()
    if not token:
        raise NoCredentialError("Empty bearer token")
    return token


async def authenticate_token(
    token: str,
    session: AsyncSession,
    blacklist: TokenBlacklist | None = None,
) -> Identity:
    """Run a bearer token through blacklist, signature and subject checks.

    Raises PipelineFailure wrapping the AuthError of the first failing stage.
    """
    blacklist = blacklist or get_token_blacklist()
    stage = PipelineStage.CREDENTIAL_EXTRACTED
    try:
        await blacklist.ensure_not_revoked(peek_claims(token))
        stage = PipelineStage.BLACKLIST_CHECKED

        claims = verify_token(token, TokenKind.ACCESS)
        stage = PipelineStage.SIGNATURE_VERIFIED

        user = await get_active_subject(session, claims.subject_id)
        stage = PipelineStage.SUBJECT_STATUS_VERIFIED
    except AuthError as e:
        raise PipelineFailure(e, stage) from e

    return Identity(user=user, claims=claims)


async def authenticate_header(
    authorization: str | None,
    session: AsyncSession,
    blacklist: TokenBlacklist | None = None,
) -> Identity:
    try:
        token = extract_bearer(authorization)
    except NoCredentialError as e:
        raise PipelineFailure(e, PipelineStage.NO_CREDENTIAL) from e
    return await authenticate_token(token, session, blacklist)
