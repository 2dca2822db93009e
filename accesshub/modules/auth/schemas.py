from pydantic import BaseModel, EmailStr
from typing import Any, Dict, List, Optional

from accesshub.core.schemas import CamelModel


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    name: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: Optional[str] = None
    user_id: str
    email: str


class CurrentUserResponse(BaseModel):
    id: str
    email: str
    name: str
    is_active: bool = True
    is_super_user: bool = False
    profiles: List[Dict[str, Any]] = []
    profile_id: Optional[str] = None
    profile_name: Optional[str] = None


class TokenValidationRequest(CamelModel):
    token: Optional[str] = None


class TokenValidationResponse(CamelModel):
    valid: bool
    user: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
