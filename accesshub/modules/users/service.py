import logging
from datetime import datetime, timezone
from typing import List

from fastapi import HTTPException
from supabase import Client

from accesshub.modules.auth.passwords import hash_password, password_strength_errors
from accesshub.modules.users.schemas import UserCreate, UserUpdate, UserResponse

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_user(self, user_data: UserCreate) -> UserResponse:
        """Create a user with a local password"""
        errors = password_strength_errors(user_data.password)
        if errors:
            raise HTTPException(status_code=400, detail="; ".join(errors))
        try:
            email = user_data.email.lower()
            existing = self.supabase.table("users")\
                .select("id")\
                .eq("email", email)\
                .limit(1)\
                .execute()
            if existing.data:
                raise HTTPException(status_code=409, detail="A user with this email already exists")

            result = self.supabase.table("users").insert({
                "email": email,
                "name": user_data.name,
                "password_hash": hash_password(user_data.password),
                "is_active": True,
                "is_super_user": user_data.is_super_user,
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create user")

            logger.info(f"Created user {result.data[0]['id']} ({email})")
            return UserResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_user_by_id(self, user_id: str) -> UserResponse:
        """Get user by ID"""
        try:
            result = self.supabase.table("users")\
                .select("*")\
                .eq("id", user_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        if not result.data:
            raise HTTPException(status_code=404, detail="User not found")
        return UserResponse(**result.data[0])

    def list_users(self, limit: int = 50, offset: int = 0) -> List[UserResponse]:
        try:
            result = self.supabase.table("users")\
                .select("*")\
                .order("email")\
                .range(offset, offset + limit - 1)\
                .execute()
            return [UserResponse(**user) for user in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_user(self, user_id: str, user_data: UserUpdate) -> UserResponse:
        """Update name, password or flags"""
        update_data = {"updated_at": datetime.now(timezone.utc).isoformat()}
        if user_data.name is not None:
            update_data["name"] = user_data.name
        if user_data.is_active is not None:
            update_data["is_active"] = user_data.is_active
        if user_data.is_super_user is not None:
            update_data["is_super_user"] = user_data.is_super_user
        if user_data.password is not None:
            errors = password_strength_errors(user_data.password)
            if errors:
                raise HTTPException(status_code=400, detail="; ".join(errors))
            update_data["password_hash"] = hash_password(user_data.password)

        try:
            result = self.supabase.table("users")\
                .update(update_data)\
                .eq("id", user_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        if not result.data:
            raise HTTPException(status_code=404, detail="User not found")
        return UserResponse(**result.data[0])

    def delete_user(self, user_id: str) -> bool:
        """Delete user; assignments and overrides cascade"""
        try:
            result = self.supabase.table("users")\
                .delete()\
                .eq("id", user_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not result.data:
            raise HTTPException(status_code=404, detail="User not found")
        return True
