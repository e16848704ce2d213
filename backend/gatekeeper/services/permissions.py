"""Permission resolution.

Every authorization decision goes through ``PermissionResolver``. A
subject's effective permissions are the union of the active permission
rows of every role it holds; the configured super role bypasses the matrix.

Per-role matrices are cached in the key-value store under a key that embeds
the role's ``permissions_version``. ``bulk_update`` replaces the rows and
bumps the version in one transaction, so readers see either the complete
old matrix or the complete new one.
"""

import json
import logging
import uuid
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core import settings
from gatekeeper.core.errors import (
    InsufficientPermissionError,
    RoleNotFoundError,
    StoreUnavailableError,
)
from gatekeeper.core.kv_store import KeyValueStore, StorePurpose, get_store
from gatekeeper.models import Permission, Role, User
from gatekeeper.schemas.common import Action, Section
from gatekeeper.schemas.permission import PermissionEntry, RoleCreate, RoleListFilter

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "permission:role:"

# Roles that can see every role in listings, in addition to the super role
ROLE_VISIBILITY_ADMINS = frozenset({"admin"})

ALL_ACTIONS = [action.value for action in Action]

_STAFF_SECTIONS = [
    s for s in Section if s not in (Section.ROLE, Section.PERMISSION, Section.SETTINGS)
]

# name -> (description, visible_to_roles, {section: actions})
DEFAULT_ROLES: dict[str, tuple[str, list[str], dict[Section, list[str]]]] = {
    "admin": (
        "Platform administrator",
        [],
        {section: ALL_ACTIONS for section in Section},
    ),
    "employee": (
        "Back-office employee",
        ["admin"],
        {section: [Action.VIEW.value] for section in _STAFF_SECTIONS},
    ),
    "agent": (
        "Field agent onboarding coaching centers",
        ["employee"],
        {
            Section.COACHING_CENTER: [Action.VIEW.value, Action.CREATE.value, Action.UPDATE.value],
            Section.LOCATION: [Action.VIEW.value],
            Section.SPORT: [Action.VIEW.value],
            Section.FACILITY: [Action.VIEW.value],
        },
    ),
    "user": (
        "Registered end user",
        ["employee", "agent"],
        {},
    ),
}


def role_cache_key(role: Role) -> str:
    return f"{CACHE_KEY_PREFIX}{role.id}:v{role.permissions_version}"


def full_matrix() -> dict[str, list[str]]:
    return {section.value: list(ALL_ACTIONS) for section in Section}


class PermissionResolver:
    """Resolves and updates role permissions."""

    def __init__(self, session: AsyncSession, cache: KeyValueStore | None = None):
        self.session = session
        self._cache = cache

    @property
    def cache(self) -> KeyValueStore:
        if self._cache is None:
            return get_store(StorePurpose.PERMISSION_CACHE)
        return self._cache

    def is_super(self, user: User) -> bool:
        return settings.super_role_name in user.role_names

    async def _load_role_matrix(self, role_id: uuid.UUID) -> dict[str, list[str]]:
        result = await self.session.execute(
            select(Permission.section, Permission.actions).where(
                Permission.role_id == role_id,
                Permission.is_active.is_(True),
            )
        )
        return {section: list(actions) for section, actions in result.all()}

    async def role_matrix(self, role: Role) -> dict[str, list[str]]:
        """Active permissions of one role, served from cache when possible."""
        key = role_cache_key(role)
        try:
            cached = await self.cache.get(key)
        except StoreUnavailableError as e:
            logger.warning(f"Permission cache unavailable, reading from database: {e}")
            return await self._load_role_matrix(role.id)

        if cached is not None:
            try:
                return json.loads(cached)
            except json.JSONDecodeError:
                logger.warning(f"Discarding corrupt permission cache entry {key}")

        matrix = await self._load_role_matrix(role.id)
        try:
            await self.cache.set(key, json.dumps(matrix), settings.permission_cache_ttl_seconds)
        except StoreUnavailableError as e:
            logger.warning(f"Could not cache permissions for role {role.name}: {e}")
        return matrix

    async def effective_permissions(self, user: User) -> dict[str, list[str]]:
        """Union of the active permissions of every role the user holds."""
        if self.is_super(user):
            return full_matrix()

        merged: dict[str, set[str]] = {}
        for role in user.roles:
            for section, actions in (await self.role_matrix(role)).items():
                merged.setdefault(section, set()).update(actions)
        return {
            section: [action for action in ALL_ACTIONS if action in actions]
            for section, actions in sorted(merged.items())
            if actions
        }

    async def has_permission(self, user: User, section: Section | str, action: Action | str) -> bool:
        if self.is_super(user):
            return True
        section_value = Section(section).value
        action_value = Action(action).value
        for role in user.roles:
            if action_value in (await self.role_matrix(role)).get(section_value, []):
                return True
        return False

    async def has_any_permission(
        self, user: User, checks: Iterable[tuple[Section | str, Action | str]]
    ) -> bool:
        for section, action in checks:
            if await self.has_permission(user, section, action):
                return True
        return False

    async def has_all_permissions(
        self, user: User, checks: Iterable[tuple[Section | str, Action | str]]
    ) -> bool:
        for section, action in checks:
            if not await self.has_permission(user, section, action):
                return False
        return True

    async def require(self, user: User, section: Section | str, action: Action | str) -> None:
        """Raise InsufficientPermissionError unless the user may do ``action`` on ``section``."""
        if not await self.has_permission(user, section, action):
            raise InsufficientPermissionError(Section(section).value, Action(action).value)

    async def require_any(
        self, user: User, section: Section | str, actions: Iterable[Action | str]
    ) -> None:
        """Raise unless the user may do at least one of ``actions`` on ``section``."""
        section_value = Section(section).value
        action_values = [Action(action).value for action in actions]
        if not await self.has_any_permission(
            user, [(section_value, action) for action in action_values]
        ):
            raise InsufficientPermissionError(section_value, "/".join(action_values))

    async def require_all(
        self, user: User, section: Section | str, actions: Iterable[Action | str]
    ) -> None:
        """Raise for the first of ``actions`` the user may not do on ``section``."""
        for action in actions:
            await self.require(user, section, action)

    # --- Roles ---

    async def get_role(self, role_id: uuid.UUID) -> Role:
        result = await self.session.execute(select(Role).where(Role.id == role_id))
        role = result.scalar_one_or_none()
        if role is None:
            raise RoleNotFoundError(f"Role {role_id} not found")
        return role

    async def get_role_by_name(self, name: str) -> Role | None:
        result = await self.session.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def role_permissions(self, role_id: uuid.UUID) -> tuple[Role, list[Permission]]:
        role = await self.get_role(role_id)
        result = await self.session.execute(
            select(Permission).where(Permission.role_id == role_id).order_by(Permission.section)
        )
        return role, list(result.scalars().all())

    async def bulk_update(self, role_id: uuid.UUID, entries: list[PermissionEntry]) -> Role:
        """Replace a role's whole permission matrix atomically.

        Old rows are deleted, new rows inserted and the role's version bumped
        in a single transaction.
        """
        result = await self.session.execute(
            select(Role).where(Role.id == role_id).with_for_update()
        )
        role = result.scalar_one_or_none()
        if role is None:
            raise RoleNotFoundError(f"Role {role_id} not found")

        old_key = role_cache_key(role)
        await self.session.execute(delete(Permission).where(Permission.role_id == role_id))
        self.session.add_all(
            Permission(
                role_id=role_id,
                section=entry.section.value,
                actions=[action.value for action in entry.actions],
                is_active=entry.is_active,
            )
            for entry in entries
        )
        role.permissions_version += 1
        await self.session.commit()
        await self.session.refresh(role)

        try:
            await self.cache.delete(old_key)
        except StoreUnavailableError as e:
            logger.warning(f"Could not drop stale permission cache entry {old_key}: {e}")

        logger.info(
            f"Permissions of role {role.name} replaced ({len(entries)} sections, "
            f"version {role.permissions_version})"
        )
        return role

    async def create_role(self, data: RoleCreate) -> Role:
        role = Role(
            name=data.name,
            description=data.description,
            visible_to_roles=list(data.visible_to_roles),
        )
        self.session.add(role)
        await self.session.commit()
        await self.session.refresh(role)
        logger.info(f"Created role: {role.name}")
        return role

    def _can_see_all_roles(self, viewer: User) -> bool:
        names = set(viewer.role_names)
        return settings.super_role_name in names or bool(names & ROLE_VISIBILITY_ADMINS)

    async def list_visible_roles(self, viewer: User, filters: RoleListFilter) -> list[Role]:
        """Roles the viewer may see, narrowed by ``filters``.

        The super role and admins see every role; everyone else sees roles
        whose ``visible_to_roles`` names one of their roles.
        """
        query = select(Role).order_by(Role.name)
        if filters.search:
            query = query.where(Role.name.ilike(f"%{filters.search.strip()}%"))
        roles = list((await self.session.execute(query)).scalars().all())

        if not self._can_see_all_roles(viewer):
            viewer_roles = set(viewer.role_names)
            roles = [r for r in roles if viewer_roles & set(r.visible_to_roles or [])]
        if filters.visible_to:
            roles = [r for r in roles if filters.visible_to in (r.visible_to_roles or [])]

        return roles[filters.offset : filters.offset + filters.limit]

    async def ensure_default_roles(self) -> list[Role]:
        """Create the super role and the built-in roles if they are missing."""
        created: list[Role] = []
        if await self.get_role_by_name(settings.super_role_name) is None:
            role = Role(
                name=settings.super_role_name,
                description="Unrestricted access",
                visible_to_roles=[],
            )
            self.session.add(role)
            created.append(role)

        for name, (description, visible_to, matrix) in DEFAULT_ROLES.items():
            if await self.get_role_by_name(name) is not None:
                continue
            role = Role(name=name, description=description, visible_to_roles=list(visible_to))
            role.permissions = [
                Permission(section=Section(section).value, actions=list(actions))
                for section, actions in matrix.items()
            ]
            self.session.add(role)
            created.append(role)

        if settings.default_user_role not in DEFAULT_ROLES and (
            await self.get_role_by_name(settings.default_user_role) is None
        ):
            role = Role(name=settings.default_user_role, visible_to_roles=[])
            self.session.add(role)
            created.append(role)

        if created:
            await self.session.commit()
            logger.info(f"Seeded roles: {', '.join(r.name for r in created)}")
        return created
