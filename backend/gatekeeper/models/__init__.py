# Gatekeeper Models
from gatekeeper.models.base import BaseModel
from gatekeeper.models.device import Device
from gatekeeper.models.role import Permission, Role
from gatekeeper.models.user import User, user_roles

__all__ = [
    "BaseModel",
    "Device",
    "Permission",
    "Role",
    "User",
    "user_roles",
]
