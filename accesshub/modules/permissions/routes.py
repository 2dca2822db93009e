from fastapi import APIRouter, Depends, HTTPException
from supabase import Client
from typing import Any, Dict

from accesshub.cache import CacheManager
from accesshub.core.dependencies import get_cache, require_self_or_super_user
from accesshub.database.supabase_client import get_supabase
from accesshub.modules.permissions.resolver import PermissionResolver, resolve_cached
from accesshub.modules.permissions.schemas import (
    UserPermissionsResponse, SystemPermissionsResponse,
    PermissionCheckRequest, PermissionCheckResponse,
)

router = APIRouter(prefix="/users", tags=["permissions"])


def get_resolver(supabase: Client = Depends(get_supabase)) -> PermissionResolver:
    return PermissionResolver(supabase)


@router.get(
    "/{user_id}/permissions",
    response_model=UserPermissionsResponse,
)
async def get_user_permissions(
    user_id: str,
    caller: Dict[str, Any] = Depends(require_self_or_super_user),
    resolver: PermissionResolver = Depends(get_resolver),
    cache: CacheManager = Depends(get_cache)
):
    """Effective permissions of a user across every system"""
    resolved = await resolve_cached(resolver, cache, user_id)
    return UserPermissionsResponse(
        user_id=user_id,
        permissions=resolved.permissions,
        total=len(resolved.permissions),
    )


@router.get(
    "/{user_id}/systems/{system_id}/permissions",
    response_model=SystemPermissionsResponse,
)
async def get_user_system_permissions(
    user_id: str,
    system_id: str,
    caller: Dict[str, Any] = Depends(require_self_or_super_user),
    resolver: PermissionResolver = Depends(get_resolver),
    cache: CacheManager = Depends(get_cache)
):
    """Effective permissions of a user within one system"""
    resolved = await resolve_cached(resolver, cache, user_id, system_id)
    if not resolved.found:
        raise HTTPException(status_code=404, detail="System not found")
    return SystemPermissionsResponse(
        user_id=user_id,
        system_id=system_id,
        system_name=resolved.system_name,
        permissions=resolved.permissions,
        function_keys=[p.function_key for p in resolved.permissions],
        total=len(resolved.permissions),
    )


@router.post(
    "/{user_id}/systems/{system_id}/check",
    response_model=PermissionCheckResponse,
    response_model_exclude_none=True,
)
async def check_permission(
    user_id: str,
    system_id: str,
    body: PermissionCheckRequest,
    caller: Dict[str, Any] = Depends(require_self_or_super_user),
    resolver: PermissionResolver = Depends(get_resolver)
):
    """Decide one function for a user"""
    result = resolver.check(user_id, system_id, body.function_key)
    return PermissionCheckResponse(
        user_id=user_id,
        system_id=system_id,
        function_key=body.function_key,
        granted=result.granted,
        reason=result.reason,
    )
