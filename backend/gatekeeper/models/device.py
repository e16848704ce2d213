"""Device model - one registered client installation of a user."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from gatekeeper.models.base import BaseModel


class Device(BaseModel):
    """A client installation holding exactly one current refresh token.

    Only the SHA-256 digest of the current refresh token is stored. A refresh
    token is accepted only if its digest matches ``refresh_token_hash`` and
    the record is active. At most one active record exists per
    (user_id, device_id).
    """

    __tablename__ = "devices"
    __table_args__ = (
        Index(
            "uq_devices_active_user_device",
            "user_id",
            "device_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    device_id: Mapped[str] = mapped_column(String(255), nullable=False)
    device_type: Mapped[str] = mapped_column(String(20), nullable=False)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    app_version: Mapped[str | None] = mapped_column(String(50), nullable=True)

    token_family: Mapped[str] = mapped_column(String(64), nullable=False)
    refresh_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    refresh_jti: Mapped[str | None] = mapped_column(String(64), nullable=True)
    refresh_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Device {self.device_type}:{self.device_id}>"
