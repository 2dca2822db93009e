from typing import List, Optional

from pydantic import field_validator

from accesshub.core.schemas import CamelModel
from accesshub.modules.permissions.resolver import CapabilityDescriptor


class UserPermissionsResponse(CamelModel):
    user_id: str
    permissions: List[CapabilityDescriptor]
    total: int


class SystemPermissionsResponse(CamelModel):
    user_id: str
    system_id: str
    system_name: Optional[str] = None
    permissions: List[CapabilityDescriptor]
    function_keys: List[str]
    total: int


class PermissionCheckRequest(CamelModel):
    function_key: str

    @field_validator("function_key")
    @classmethod
    def function_key_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("functionKey is required")
        return v.strip()


class PermissionCheckResponse(CamelModel):
    user_id: str
    system_id: str
    function_key: str
    granted: bool
    reason: Optional[str] = None
