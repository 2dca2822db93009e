from pydantic import BaseModel, field_validator
from typing import Dict, List, Optional
from datetime import datetime

from accesshub.core.capability import validate_identifier
from accesshub.core.schemas import CamelModel


class SystemCreate(BaseModel):
    id: str
    name: str
    description: Optional[str] = ""
    api_url: Optional[str] = ""
    is_active: bool = True

    @field_validator("id")
    @classmethod
    def check_id(cls, value: str) -> str:
        return validate_identifier(value, "system id")


class SystemUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    api_url: Optional[str] = None
    is_active: Optional[bool] = None


class SystemResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = ""
    api_url: Optional[str] = ""
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FunctionResponse(BaseModel):
    id: str
    system_id: str
    function_key: str
    name: str
    category: Optional[str] = ""
    description: Optional[str] = ""
    endpoint: Optional[str] = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SystemWithFunctionsResponse(SystemResponse):
    functions: List[FunctionResponse] = []


class SystemFunctionsResponse(BaseModel):
    system_id: str
    total: int
    functions: List[FunctionResponse]
    by_category: Dict[str, List[FunctionResponse]]


# Sync wire format (camelCase, shared with client systems)

class ManifestSystemInfo(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = ""
    version: Optional[str] = None
    api_url: Optional[str] = ""


class ManifestFunctionIn(CamelModel):
    key: str
    name: str
    category: Optional[str] = ""
    description: Optional[str] = ""
    endpoint: Optional[str] = ""

    @field_validator("key")
    @classmethod
    def check_key(cls, value: str) -> str:
        return validate_identifier(value, "function key")


class SyncFunctionsRequest(CamelModel):
    system: Optional[ManifestSystemInfo] = None
    functions: List[ManifestFunctionIn]


class SyncSummary(CamelModel):
    total: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    removed: int = 0


class RemovedFunction(CamelModel):
    key: str
    name: str
    note: str = "Function exists in the registry but is no longer in the manifest"


class SyncFunctionsResponse(CamelModel):
    success: bool = True
    message: str = "Synchronization completed"
    system: str
    summary: SyncSummary
    removed_functions: List[RemovedFunction] = []
