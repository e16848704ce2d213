"""User account model and the user/role association."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Table, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatekeeper.core.config import settings
from gatekeeper.core.database import Base
from gatekeeper.models.base import BaseModel

user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Uuid, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class User(BaseModel):
    """A subject that can authenticate.

    Only the fields needed for login and the per-request status check live
    here; profile data belongs to the surrounding application.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    roles: Mapped[list["Role"]] = relationship(  # noqa: F821
        secondary=user_roles,
        lazy="selectin",
    )

    @property
    def role_names(self) -> list[str]:
        return sorted(role.name for role in self.roles)

    @property
    def primary_role(self) -> str | None:
        """Role name embedded in access tokens (super role wins, then alphabetical)."""
        names = self.role_names
        if settings.super_role_name in names:
            return settings.super_role_name
        return names[0] if names else None

    @property
    def role_ids(self) -> list[uuid.UUID]:
        return [role.id for role in self.roles]

    def __repr__(self) -> str:
        return f"<User {self.email}>"
