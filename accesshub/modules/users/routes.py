from fastapi import APIRouter, Depends
from supabase import Client
from typing import Any, Dict, List

from accesshub.cache import CacheKeys, CacheManager
from accesshub.core.dependencies import get_cache, require_self_or_super_user, require_super_user
from accesshub.database.supabase_client import get_supabase
from accesshub.modules.users.schemas import UserCreate, UserUpdate, UserResponse
from accesshub.modules.users.service import UserService

router = APIRouter(prefix="/users", tags=["users"])


def get_user_service(supabase: Client = Depends(get_supabase)) -> UserService:
    return UserService(supabase)


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    user_data: UserCreate,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: UserService = Depends(get_user_service)
):
    """Create a user (super users only)"""
    return service.create_user(user_data)


@router.get("", response_model=List[UserResponse])
async def list_users(
    limit: int = 50,
    offset: int = 0,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: UserService = Depends(get_user_service)
):
    return service.list_users(limit=limit, offset=offset)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    caller: Dict[str, Any] = Depends(require_self_or_super_user),
    service: UserService = Depends(get_user_service)
):
    return service.get_user_by_id(user_id)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: UserService = Depends(get_user_service),
    cache: CacheManager = Depends(get_cache)
):
    """Update user; deactivation takes effect on the next token validation"""
    user = service.update_user(user_id, user_data)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern(user_id))
    return user


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: UserService = Depends(get_user_service),
    cache: CacheManager = Depends(get_cache)
):
    service.delete_user(user_id)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern(user_id))
    return None
