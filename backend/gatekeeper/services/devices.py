"""Device registry and refresh-token rotation.

Each device holds exactly one current refresh token, stored as a SHA-256
digest. Refreshing swaps the digest with a compare-and-set UPDATE, so of
two concurrent refreshes with the same token at most one succeeds; the
loser, and any later replay of the old token, is rejected.
"""

import hashlib
import hmac
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core.errors import (
    MalformedCredentialError,
    ReplayedRefreshTokenError,
    StoreUnavailableError,
)
from gatekeeper.models import Device, User
from gatekeeper.schemas.auth import DeviceMeta
from gatekeeper.services.blacklist import TokenBlacklist, get_token_blacklist
from gatekeeper.services.subjects import get_active_subject, parse_subject_id
from gatekeeper.services.tokens import (
    IssuedToken,
    TokenKind,
    issue_access_token,
    issue_refresh_token,
    verify_token,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access: IssuedToken
    refresh: IssuedToken
    device_id: str
    device_type: str

    def as_response(self) -> dict[str, Any]:
        return {
            "access_token": self.access.token,
            "refresh_token": self.refresh.token,
            "token_type": "bearer",
            "expires_in": self.access.expires_in,
            "refresh_expires_in": self.refresh.expires_in,
            "device_id": self.device_id,
        }


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _remaining_seconds(expires_at: datetime | None) -> int:
    if expires_at is None:
        return 0
    if expires_at.tzinfo is None:
        # SQLite drops the offset; values are always written in UTC
        expires_at = expires_at.replace(tzinfo=UTC)
    return max(0, math.ceil((expires_at - datetime.now(UTC)).total_seconds()))


class DeviceRegistry:
    """Registers devices and rotates their refresh tokens."""

    def __init__(self, session: AsyncSession, blacklist: TokenBlacklist | None = None):
        self.session = session
        self.blacklist = blacklist or get_token_blacklist()

    def _issue_pair(self, user: User, device: Device) -> TokenPair:
        access = issue_access_token(user.id, user.email, user.primary_role)
        refresh = issue_refresh_token(
            user.id, device.device_id, device.device_type, device.token_family
        )
        return TokenPair(
            access=access,
            refresh=refresh,
            device_id=device.device_id,
            device_type=device.device_type,
        )

    async def _revoke_refresh_jti(self, device: Device) -> None:
        """Blacklist a device's current refresh token for its remaining lifetime."""
        if not device.refresh_jti:
            return
        ttl = _remaining_seconds(device.refresh_token_expires_at)
        try:
            await self.blacklist.revoke(device.refresh_jti, ttl)
        except StoreUnavailableError as e:
            # The digest swap already makes the old token unusable
            logger.warning(f"Could not blacklist refresh token of device {device.device_id}: {e}")

    async def get_active_device(self, user_id: uuid.UUID, device_id: str) -> Device | None:
        result = await self.session.execute(
            select(Device).where(
                Device.user_id == user_id,
                Device.device_id == device_id,
                Device.is_active.is_(True),
            )
            # Rotation updates rows without touching loaded objects
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_devices(self, user_id: uuid.UUID, include_inactive: bool = False) -> list[Device]:
        query = select(Device).where(Device.user_id == user_id)
        if not include_inactive:
            query = query.where(Device.is_active.is_(True))
        result = await self.session.execute(query.order_by(Device.created_at.desc()))
        return list(result.scalars().all())

    async def _login_on_device(
        self, user: User, device_id: str, meta: DeviceMeta
    ) -> tuple[Device, TokenPair]:
        device = await self.get_active_device(user.id, device_id)
        if device is None:
            device = Device(
                user_id=user.id,
                device_id=device_id,
                device_type=meta.device_type.value,
                token_family=uuid.uuid4().hex,
            )
            self.session.add(device)
        else:
            await self._revoke_refresh_jti(device)
            device.device_type = meta.device_type.value
            device.token_family = uuid.uuid4().hex

        device.device_name = meta.device_name or device.device_name
        device.app_version = meta.app_version or device.app_version

        pair = self._issue_pair(user, device)
        device.refresh_token_hash = hash_refresh_token(pair.refresh.token)
        device.refresh_jti = pair.refresh.jti
        device.refresh_token_expires_at = pair.refresh.expires_at_datetime
        device.last_seen_at = datetime.now(UTC)

        await self.session.commit()
        return device, pair

    async def register_device(self, user: User, meta: DeviceMeta) -> tuple[Device, TokenPair]:
        """Register (or re-register) a device and issue its first token pair.

        A login on a device that is already active starts a new token family
        and invalidates the device's previous refresh token. When a concurrent
        login registers the same device first, this login takes over that row
        the same way.
        """
        device_id = meta.device_id or uuid.uuid4().hex
        user_id = user.id

        try:
            device, pair = await self._login_on_device(user, device_id, meta)
        except IntegrityError:
            # Only one active row per user and device
            await self.session.rollback()
            logger.info(
                f"Device {device_id} was registered concurrently, re-using it",
                extra={"subject_id": str(user_id)},
            )
            user = await get_active_subject(self.session, user_id)
            device, pair = await self._login_on_device(user, device_id, meta)

        await self.session.refresh(device)
        logger.info(
            f"Registered {device.device_type} device {device.device_id}",
            extra={"subject_id": str(user_id)},
        )
        return device, pair

    async def rotate_refresh_token(
        self,
        token: str,
        device_type: str | None = None,
        device_id: str | None = None,
    ) -> tuple[User, TokenPair]:
        """Exchange a refresh token for a new pair.

        Succeeds only if the token verifies, its device is active, the token
        is the device's current one (digest and family match) and it is not
        blacklisted. The old token is blacklisted afterwards.
        """
        claims = verify_token(token, TokenKind.REFRESH)
        if device_id is not None and device_id != claims.device_id:
            raise MalformedCredentialError("Refresh token belongs to a different device")
        if device_type is not None and device_type != claims.device_type:
            raise MalformedCredentialError("Refresh token belongs to a different device type")

        user_id = parse_subject_id(claims.subject_id)
        device = await self.get_active_device(user_id, str(claims.device_id))
        if device is None:
            raise ReplayedRefreshTokenError("Device is not registered or has been signed out")

        presented_hash = hash_refresh_token(token)
        if device.token_family != claims.token_family or not hmac.compare_digest(
            device.refresh_token_hash or "", presented_hash
        ):
            logger.warning(
                "Superseded refresh token presented",
                extra={
                    "subject_id": claims.subject_id,
                    "device_id": device.device_id,
                    "reason": ReplayedRefreshTokenError.reason,
                },
            )
            raise ReplayedRefreshTokenError("Refresh token is not current for this device")

        await self.blacklist.ensure_not_revoked(claims)
        user = await get_active_subject(self.session, user_id)

        pair = self._issue_pair(user, device)
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            update(Device)
            .where(
                Device.id == device.id,
                Device.is_active.is_(True),
                Device.refresh_token_hash == presented_hash,
            )
            .values(
                refresh_token_hash=hash_refresh_token(pair.refresh.token),
                refresh_jti=pair.refresh.jti,
                refresh_token_expires_at=pair.refresh.expires_at_datetime,
                last_seen_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            logger.warning(
                "Lost refresh rotation race",
                extra={"subject_id": claims.subject_id, "reason": ReplayedRefreshTokenError.reason},
            )
            raise ReplayedRefreshTokenError("Refresh token was already rotated")
        await self.session.commit()

        try:
            await self.blacklist.revoke_claims(claims)
        except StoreUnavailableError as e:
            logger.warning(f"Could not blacklist rotated refresh token: {e}")

        return user, pair

    async def deactivate(self, user_id: uuid.UUID, device_id: str) -> bool:
        """Sign a device out. Returns False if it was not active."""
        device = await self.get_active_device(user_id, device_id)
        if device is None:
            return False
        await self._revoke_refresh_jti(device)
        device.is_active = False
        device.refresh_token_hash = None
        await self.session.commit()
        logger.info(f"Deactivated device {device_id}", extra={"subject_id": str(user_id)})
        return True

    async def deactivate_all(self, user_id: uuid.UUID) -> int:
        """Sign out every device of a user. Returns count deactivated."""
        devices = await self.list_devices(user_id)
        for device in devices:
            await self._revoke_refresh_jti(device)
            device.is_active = False
            device.refresh_token_hash = None
        await self.session.commit()
        if devices:
            logger.info(
                f"Deactivated {len(devices)} devices",
                extra={"subject_id": str(user_id)},
            )
        return len(devices)
