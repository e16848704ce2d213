"""Shared schema base and enums."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Schema serialised with camelCase keys; accepts either case on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class DeviceType(str, Enum):
    WEB = "web"
    ANDROID = "android"
    IOS = "ios"


class Section(str, Enum):
    """Protected resource areas of the platform."""

    COACHING_CENTER = "coaching_center"
    EMPLOYEE = "employee"
    BATCH = "batch"
    BOOKING = "booking"
    STUDENT = "student"
    PARTICIPANT = "participant"
    FEE_TYPE_CONFIG = "fee_type_config"
    SPORT = "sport"
    FACILITY = "facility"
    LOCATION = "location"
    SETTINGS = "settings"
    REEL = "reel"
    ROLE = "role"
    USER = "user"
    ACADEMY_AUTH = "academy_auth"
    USER_AUTH = "user_auth"
    PERMISSION = "permission"
    DASHBOARD = "dashboard"


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MessageResponse(CamelModel):
    """Generic message response."""

    message: str
