"""Pydantic schemas for roles and permissions."""

from uuid import UUID

from pydantic import Field, field_validator

from gatekeeper.schemas.common import Action, CamelModel, Section


class PermissionEntry(CamelModel):
    """Allowed actions for one section."""

    section: Section
    actions: list[Action] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("actions")
    @classmethod
    def dedupe_actions(cls, v: list[Action]) -> list[Action]:
        return list(dict.fromkeys(v))


class BulkPermissionUpdate(CamelModel):
    """Full replacement of a role's permission matrix."""

    permissions: list[PermissionEntry]

    @field_validator("permissions")
    @classmethod
    def unique_sections(cls, v: list[PermissionEntry]) -> list[PermissionEntry]:
        seen: set[Section] = set()
        for entry in v:
            if entry.section in seen:
                raise ValueError(f"Duplicate section: {entry.section.value}")
            seen.add(entry.section)
        return v


class RolePermissionsResponse(CamelModel):
    role_id: UUID
    role_name: str
    permissions_version: int
    permissions: list[PermissionEntry]


class EffectivePermissionsResponse(CamelModel):
    """Union of the caller's active permissions across all of their roles."""

    roles: list[str]
    is_super_admin: bool
    permissions: dict[str, list[str]]


class RoleCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100, pattern=r"^[a-z][a-z0-9_]*$")
    description: str | None = Field(None, max_length=500)
    visible_to_roles: list[str] = Field(default_factory=list)


class RoleResponse(CamelModel):
    id: UUID
    name: str
    description: str | None
    visible_to_roles: list[str]
    permissions_version: int


class RoleListFilter(CamelModel):
    """Filters for the role listing endpoint."""

    search: str | None = Field(None, max_length=100)
    visible_to: str | None = Field(None, max_length=100, description="Only roles visible to this role name")
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)
