# Gatekeeper Schemas
from gatekeeper.schemas.auth import (
    DeviceMeta,
    DeviceResponse,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from gatekeeper.schemas.common import Action, CamelModel, DeviceType, MessageResponse, Section
from gatekeeper.schemas.permission import (
    BulkPermissionUpdate,
    EffectivePermissionsResponse,
    PermissionEntry,
    RoleCreate,
    RoleListFilter,
    RolePermissionsResponse,
    RoleResponse,
)

__all__ = [
    "Action",
    "BulkPermissionUpdate",
    "CamelModel",
    "DeviceMeta",
    "DeviceResponse",
    "DeviceType",
    "EffectivePermissionsResponse",
    "LoginRequest",
    "LogoutRequest",
    "MessageResponse",
    "PermissionEntry",
    "RefreshRequest",
    "RegisterRequest",
    "RoleCreate",
    "RoleListFilter",
    "RolePermissionsResponse",
    "RoleResponse",
    "Section",
    "TokenResponse",
    "UserResponse",
]
