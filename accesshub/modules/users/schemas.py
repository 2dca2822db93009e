from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime


class UserCreate(BaseModel):
    email: EmailStr
    name: str
    password: str
    is_super_user: bool = False


class UserUpdate(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = None
    is_active: Optional[bool] = None
    is_super_user: Optional[bool] = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    is_active: bool = True
    is_super_user: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
