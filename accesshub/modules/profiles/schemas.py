from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from accesshub.modules.systems.schemas import FunctionResponse


class ProfileCreate(BaseModel):
    name: str
    description: Optional[str] = ""
    system_id: Optional[str] = None  # None = global profile


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ProfileResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = ""
    system_id: Optional[str] = None
    is_global: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileWithFunctionsResponse(ProfileResponse):
    functions: List[FunctionResponse] = []


class ProfileGrantAssign(BaseModel):
    function_id: str


class ProfileGrantResponse(BaseModel):
    id: str
    profile_id: str
    function_id: str
    granted: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BulkGrantUpdate(BaseModel):
    function_ids: List[str]


class BulkGrantResponse(BaseModel):
    profile_id: str
    assigned_count: int
    message: str


class UserProfileAssign(BaseModel):
    profile_id: str


class UserProfileResponse(BaseModel):
    id: str
    user_id: str
    profile_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OverrideSet(BaseModel):
    function_id: str
    granted: bool
    reason: Optional[str] = ""


class OverrideResponse(BaseModel):
    id: str
    user_id: str
    function_id: str
    granted: bool
    reason: Optional[str] = ""
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
