"""Authentication service: credentials, sessions and logout."""

import logging
import uuid
from datetime import UTC, datetime

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core import settings
from gatekeeper.core.errors import (
    AuthError,
    DuplicateAccountError,
    InvalidCredentialsError,
)
from gatekeeper.models import Role, User
from gatekeeper.schemas.auth import DeviceMeta
from gatekeeper.services.blacklist import TokenBlacklist, get_token_blacklist
from gatekeeper.services.devices import DeviceRegistry, TokenPair
from gatekeeper.services.tokens import TokenClaims, TokenKind, verify_token

logger = logging.getLogger(__name__)

# Argon2 password hasher with recommended parameters
# Memory: 64 MiB, Time: 3 iterations, Parallelism: 4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)

# Verified against when the e-mail is unknown so both paths cost the same
_DUMMY_HASH = ph.hash("gatekeeper-dummy-password")


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash using constant-time comparison."""
    try:
        ph.verify(password_hash, password)
        return True
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


class AuthService:
    """Service for authentication operations."""

    def __init__(
        self,
        session: AsyncSession,
        blacklist: TokenBlacklist | None = None,
    ):
        self.session = session
        self.blacklist = blacklist or get_token_blacklist()
        self.devices = DeviceRegistry(session, self.blacklist)

    async def get_user_by_email(self, email: str) -> User | None:
        """Get user by e-mail (case-insensitive)."""
        result = await self.session.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def _get_role(self, name: str) -> Role | None:
        result = await self.session.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        password: str,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
        role_names: list[str] | None = None,
    ) -> User:
        """Create a user holding ``role_names`` (default: the configured user role)."""
        if await self.get_user_by_email(email) is not None:
            raise DuplicateAccountError("An account with this email already exists")

        roles: list[Role] = []
        for name in role_names or [settings.default_user_role]:
            role = await self._get_role(name)
            if role is None:
                logger.warning(f"Role {name!r} does not exist; not assigned to {email}")
                continue
            roles.append(role)

        user = User(
            email=email.strip().lower(),
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            roles=roles,
        )
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)

        logger.info(f"Created user: {user.email}", extra={"subject_id": str(user.id)})
        return user

    async def register(
        self,
        email: str,
        password: str,
        meta: DeviceMeta,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> tuple[User, TokenPair]:
        user = await self.create_user(email, password, first_name=first_name, last_name=last_name)
        _, pair = await self.devices.register_device(user, meta)
        return user, pair

    async def authenticate(self, email: str, password: str) -> User:
        """Authenticate a user and return the user object.

        Raises InvalidCredentialsError for unknown e-mail, wrong password and
        disabled accounts alike, so the response does not reveal which.
        """
        user = await self.get_user_by_email(email)

        if user is None:
            verify_password(password, _DUMMY_HASH)
            raise InvalidCredentialsError("Unknown email")

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Wrong password")

        if user.is_deleted or not user.is_active:
            raise InvalidCredentialsError("User account is deactivated")

        if ph.check_needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)

        user.last_login_at = datetime.now(UTC)
        await self.session.commit()
        return user

    async def login(self, email: str, password: str, meta: DeviceMeta) -> tuple[User, TokenPair]:
        user = await self.authenticate(email, password)
        _, pair = await self.devices.register_device(user, meta)
        logger.info(f"User logged in: {user.email}", extra={"subject_id": str(user.id)})
        return user, pair

    async def refresh(
        self,
        refresh_token: str,
        device_type: str | None = None,
        device_id: str | None = None,
    ) -> tuple[User, TokenPair]:
        return await self.devices.rotate_refresh_token(refresh_token, device_type, device_id)

    async def logout(self, access_claims: TokenClaims, refresh_token: str | None = None) -> None:
        """Revoke the current access token and sign out the device.

        The device is taken from the refresh token when one is supplied and
        belongs to the same subject.
        """
        await self.blacklist.revoke_claims(access_claims)

        if not refresh_token:
            return
        try:
            refresh_claims = verify_token(refresh_token, TokenKind.REFRESH)
        except AuthError as e:
            logger.info(
                f"Ignoring unusable refresh token at logout: {e}",
                extra={"subject_id": access_claims.subject_id, "reason": e.reason},
            )
            return
        if refresh_claims.subject_id != access_claims.subject_id:
            logger.warning(
                "Refresh token of another subject presented at logout",
                extra={"subject_id": access_claims.subject_id, "reason": "subject_mismatch"},
            )
            return

        await self.blacklist.revoke_claims(refresh_claims)
        await self.devices.deactivate(uuid.UUID(access_claims.subject_id), str(refresh_claims.device_id))

    async def logout_all(self, user_id: uuid.UUID) -> int:
        """Revoke every token of the user and sign out all devices.

        Returns the number of devices signed out.
        """
        await self.blacklist.revoke_all_for_subject(user_id)
        return await self.devices.deactivate_all(user_id)

    async def bootstrap_super_admin(self, email: str, password: str) -> User | None:
        """Create the super-role account if no user with ``email`` exists."""
        if await self.get_user_by_email(email) is not None:
            return None
        user = await self.create_user(email, password, role_names=[settings.super_role_name])
        logger.info(f"Bootstrapped super admin: {user.email}")
        return user

