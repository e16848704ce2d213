"""Role and permission API endpoints."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from gatekeeper.api.deps import (
    get_current_identity,
    get_permission_resolver,
    require_all_permissions,
    require_any_permission,
    require_permission,
)
from gatekeeper.schemas.common import Action, Section
from gatekeeper.schemas.permission import (
    BulkPermissionUpdate,
    EffectivePermissionsResponse,
    PermissionEntry,
    RoleCreate,
    RoleListFilter,
    RolePermissionsResponse,
    RoleResponse,
)
from gatekeeper.services.permissions import PermissionResolver
from gatekeeper.services.request_auth import Identity

logger = logging.getLogger(__name__)

router = APIRouter(tags=["roles"])


async def _role_permissions_response(
    resolver: PermissionResolver, role_id: UUID
) -> RolePermissionsResponse:
    role, permissions = await resolver.role_permissions(role_id)
    return RolePermissionsResponse(
        role_id=role.id,
        role_name=role.name,
        permissions_version=role.permissions_version,
        permissions=[PermissionEntry.model_validate(p) for p in permissions],
    )


@router.get("/permissions/me", response_model=EffectivePermissionsResponse)
async def get_my_permissions(
    identity: Identity = Depends(get_current_identity),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> EffectivePermissionsResponse:
    """Effective permission matrix of the current user."""
    return EffectivePermissionsResponse(
        roles=identity.role_names,
        is_super_admin=resolver.is_super(identity.user),
        permissions=await resolver.effective_permissions(identity.user),
    )


@router.get("/roles", response_model=list[RoleResponse])
async def list_roles(
    filters: Annotated[RoleListFilter, Query()],
    identity: Identity = Depends(get_current_identity),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> list[RoleResponse]:
    """Roles visible to the current user."""
    roles = await resolver.list_visible_roles(identity.user, filters)
    return [RoleResponse.model_validate(role) for role in roles]


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    body: RoleCreate,
    request: Request,
    _: Identity = Depends(require_all_permissions(Section.ROLE, [Action.VIEW, Action.CREATE])),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> RoleResponse:
    if await resolver.get_role_by_name(body.name) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Role {body.name} already exists",
        )
    role = await resolver.create_role(body)
    logger.info(f"Role created: {role.name}", extra={"route": request.url.path})
    return RoleResponse.model_validate(role)


@router.get("/roles/{role_id}/permissions", response_model=RolePermissionsResponse)
async def get_role_permissions(
    role_id: UUID,
    _: Identity = Depends(
        require_any_permission(Section.PERMISSION, [Action.VIEW, Action.UPDATE])
    ),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> RolePermissionsResponse:
    """Permission matrix of one role, including inactive rows."""
    return await _role_permissions_response(resolver, role_id)


@router.put("/roles/{role_id}/permissions", response_model=RolePermissionsResponse)
async def replace_role_permissions(
    role_id: UUID,
    body: BulkPermissionUpdate,
    request: Request,
    identity: Identity = Depends(require_permission(Section.PERMISSION, Action.UPDATE)),
    resolver: PermissionResolver = Depends(get_permission_resolver),
) -> RolePermissionsResponse:
    """Replace a role's whole permission matrix in one transaction.

    Already-issued access tokens pick up the change on their next request;
    cached matrices of the previous version are never served again.
    """
    await resolver.bulk_update(role_id, body.permissions)
    logger.info(
        f"Permissions replaced for role {role_id}",
        extra={"subject_id": identity.subject_id, "route": request.url.path},
    )
    return await _role_permissions_response(resolver, role_id)
