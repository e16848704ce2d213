"""Shared FastAPI dependencies: services, current identity and permission checks."""

from collections.abc import Awaitable, Callable, Sequence

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core import get_db
from gatekeeper.core.errors import NoCredentialError
from gatekeeper.schemas.common import Action, Section
from gatekeeper.services.auth import AuthService
from gatekeeper.services.permissions import PermissionResolver
from gatekeeper.services.request_auth import Identity


def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db)


def get_permission_resolver(db: AsyncSession = Depends(get_db)) -> PermissionResolver:
    """Dependency to get the permission resolver."""
    return PermissionResolver(db)


async def get_current_identity(request: Request) -> Identity:
    """Identity attached by AuthenticationMiddleware.

    Raises NoCredentialError when the route was reached without passing
    through authentication.
    """
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise NoCredentialError("Request was not authenticated")
    return identity


def require_permission(section: Section, action: Action) -> Callable[..., Awaitable[Identity]]:
    """Dependency factory: the caller must hold ``action`` on ``section``."""

    async def _require_permission(
        identity: Identity = Depends(get_current_identity),
        resolver: PermissionResolver = Depends(get_permission_resolver),
    ) -> Identity:
        await resolver.require(identity.user, section, action)
        return identity

    return _require_permission


def require_any_permission(
    section: Section, actions: Sequence[Action]
) -> Callable[..., Awaitable[Identity]]:
    """Dependency factory: the caller must hold at least one of ``actions`` on ``section``."""

    async def _require_any_permission(
        identity: Identity = Depends(get_current_identity),
        resolver: PermissionResolver = Depends(get_permission_resolver),
    ) -> Identity:
        await resolver.require_any(identity.user, section, actions)
        return identity

    return _require_any_permission


def require_all_permissions(
    section: Section, actions: Sequence[Action]
) -> Callable[..., Awaitable[Identity]]:
    """Dependency factory: the caller must hold every one of ``actions`` on ``section``."""

    async def _require_all_permissions(
        identity: Identity = Depends(get_current_identity),
        resolver: PermissionResolver = Depends(get_permission_resolver),
    ) -> Identity:
        await resolver.require_all(identity.user, section, actions)
        return identity

    return _require_all_permissions
