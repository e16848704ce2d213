"""Pydantic schemas for authentication API."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import Field, field_validator

from gatekeeper.schemas.common import CamelModel, DeviceType

if TYPE_CHECKING:
    from gatekeeper.models import User

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class DeviceMeta(CamelModel):
    """Client device details sent with login and registration."""

    device_type: DeviceType = DeviceType.WEB
    device_id: str | None = Field(None, min_length=1, max_length=255)
    device_name: str | None = Field(None, max_length=255)
    app_version: str | None = Field(None, max_length=50)


class LoginRequest(DeviceMeta):
    """Request for login."""

    email: str = Field(..., min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    def device_meta(self) -> DeviceMeta:
        return DeviceMeta(
            device_type=self.device_type,
            device_id=self.device_id,
            device_name=self.device_name,
            app_version=self.app_version,
        )


class RegisterRequest(LoginRequest):
    """Request for account registration."""

    password: str = Field(
        ...,
        min_length=8,
        max_length=128,
        description="Password (minimum 8 characters)",
    )
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)


class TokenResponse(CamelModel):
    """Response with an access/refresh token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")
    refresh_expires_in: int = Field(description="Refresh token lifetime in seconds")
    device_id: str


class RefreshRequest(CamelModel):
    """Request for token refresh.

    ``device_type`` and ``device_id`` are optional; when sent they must match
    the device the refresh token was issued to.
    """

    refresh_token: str = Field(..., min_length=1)
    device_type: DeviceType | None = None
    device_id: str | None = None


class LogoutRequest(CamelModel):
    """Request for logout with optional refresh token revocation."""

    refresh_token: str | None = Field(
        None,
        description="Refresh token to revoke together with the current access token.",
    )


class UserResponse(CamelModel):
    """Response with user information."""

    id: UUID
    email: str
    first_name: str | None
    last_name: str | None
    roles: list[str]
    is_active: bool
    last_login_at: datetime | None
    created_at: datetime

    @classmethod
    def from_user(cls, user: "User") -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            roles=user.role_names,
            is_active=user.is_active,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class DeviceResponse(CamelModel):
    """One registered device of the current user."""

    device_id: str
    device_type: DeviceType
    device_name: str | None
    app_version: str | None
    is_active: bool
    last_seen_at: datetime | None
    created_at: datetime
