"""Role and per-section permission models."""

import uuid

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatekeeper.models.base import BaseModel


class Role(BaseModel):
    """A named role holding a permission matrix.

    ``permissions_version`` is bumped on every bulk permission update so
    cached matrices keyed on the old version are never served again.
    ``visible_to_roles`` lists the role names allowed to see this role in
    role listings.
    """

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    visible_to_roles: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    permissions_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    permissions: Mapped[list["Permission"]] = relationship(
        back_populates="role",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class Permission(BaseModel):
    """Allowed actions of one role on one section."""

    __tablename__ = "permissions"
    __table_args__ = (UniqueConstraint("role_id", "section", name="uq_permissions_role_section"),)

    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    section: Mapped[str] = mapped_column(String(50), nullable=False)
    actions: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    role: Mapped[Role] = relationship(back_populates="permissions")

    def __repr__(self) -> str:
        return f"<Permission {self.section}:{','.join(self.actions)}>"
