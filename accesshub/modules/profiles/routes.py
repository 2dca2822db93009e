from fastapi import APIRouter, Depends
from supabase import Client
from typing import Any, Dict, List, Optional

from accesshub.cache import CacheKeys, CacheManager
from accesshub.core.dependencies import (
    get_cache,
    get_current_user,
    require_self_or_super_user,
    require_super_user,
)
from accesshub.database.supabase_client import get_supabase
from accesshub.modules.profiles.schemas import (
    ProfileCreate, ProfileUpdate, ProfileResponse, ProfileWithFunctionsResponse,
    ProfileGrantAssign, ProfileGrantResponse, BulkGrantUpdate, BulkGrantResponse,
    UserProfileAssign, UserProfileResponse, OverrideSet, OverrideResponse,
)
from accesshub.modules.profiles.service import ProfileService, AssignmentService
from accesshub.modules.systems.schemas import FunctionResponse

router = APIRouter(prefix="/profiles", tags=["profiles"])
user_router = APIRouter(prefix="/users", tags=["profiles"])


def get_profile_service(supabase: Client = Depends(get_supabase)) -> ProfileService:
    return ProfileService(supabase)


def get_assignment_service(supabase: Client = Depends(get_supabase)) -> AssignmentService:
    return AssignmentService(supabase)


# Profile endpoints
@router.post("", response_model=ProfileResponse, status_code=201)
async def create_profile(
    profile_data: ProfileCreate,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: ProfileService = Depends(get_profile_service)
):
    """Create a new profile"""
    return service.create_profile(profile_data)


@router.get("", response_model=List[ProfileResponse])
async def list_profiles(
    system_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    user_data: Dict[str, Any] = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    return service.list_profiles(system_id=system_id, limit=limit, offset=offset)


@router.get("/{profile_id}", response_model=ProfileWithFunctionsResponse)
async def get_profile(
    profile_id: str,
    user_data: Dict[str, Any] = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    """Get profile with the functions it grants"""
    return service.get_profile_with_functions(profile_id)


@router.put("/{profile_id}", response_model=ProfileResponse)
async def update_profile(
    profile_id: str,
    profile_data: ProfileUpdate,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: ProfileService = Depends(get_profile_service)
):
    return service.update_profile(profile_id, profile_data)


@router.delete("/{profile_id}", status_code=204)
async def delete_profile(
    profile_id: str,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: ProfileService = Depends(get_profile_service),
    cache: CacheManager = Depends(get_cache)
):
    service.delete_profile(profile_id)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern())
    return None


# Profile-function grants
@router.get("/{profile_id}/functions", response_model=List[FunctionResponse])
async def get_profile_functions(
    profile_id: str,
    user_data: Dict[str, Any] = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service)
):
    service.get_profile_by_id(profile_id)
    return service.get_profile_functions(profile_id)


@router.post("/{profile_id}/functions", response_model=ProfileGrantResponse, status_code=201)
async def grant_function(
    profile_id: str,
    grant: ProfileGrantAssign,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: ProfileService = Depends(get_profile_service),
    cache: CacheManager = Depends(get_cache)
):
    """Grant a function through a profile"""
    result = service.grant_function(profile_id, grant.function_id)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern())
    return result


@router.put("/{profile_id}/functions", response_model=BulkGrantResponse)
async def replace_profile_functions(
    profile_id: str,
    bulk_data: BulkGrantUpdate,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: ProfileService = Depends(get_profile_service),
    cache: CacheManager = Depends(get_cache)
):
    """Replace all functions granted by a profile"""
    result = service.replace_profile_functions(profile_id, bulk_data.function_ids)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern())
    return result


@router.delete("/{profile_id}/functions/{function_id}", status_code=204)
async def revoke_function(
    profile_id: str,
    function_id: str,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: ProfileService = Depends(get_profile_service),
    cache: CacheManager = Depends(get_cache)
):
    service.revoke_function(profile_id, function_id)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern())
    return None


# User-profile assignments
@user_router.get("/{user_id}/profiles", response_model=List[ProfileResponse])
async def list_user_profiles(
    user_id: str,
    caller: Dict[str, Any] = Depends(require_self_or_super_user),
    service: AssignmentService = Depends(get_assignment_service)
):
    return service.list_user_profiles(user_id)


@user_router.post("/{user_id}/profiles", response_model=UserProfileResponse, status_code=201)
async def assign_profile(
    user_id: str,
    assignment: UserProfileAssign,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: AssignmentService = Depends(get_assignment_service),
    cache: CacheManager = Depends(get_cache)
):
    result = service.assign_profile(user_id, assignment.profile_id)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern(user_id))
    return result


@user_router.delete("/{user_id}/profiles/{profile_id}", status_code=204)
async def unassign_profile(
    user_id: str,
    profile_id: str,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: AssignmentService = Depends(get_assignment_service),
    cache: CacheManager = Depends(get_cache)
):
    service.unassign_profile(user_id, profile_id)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern(user_id))
    return None


# User-function overrides
@user_router.get("/{user_id}/overrides", response_model=List[OverrideResponse])
async def list_overrides(
    user_id: str,
    caller: Dict[str, Any] = Depends(require_self_or_super_user),
    service: AssignmentService = Depends(get_assignment_service)
):
    return service.list_overrides(user_id)


@user_router.put("/{user_id}/overrides", response_model=OverrideResponse)
async def set_override(
    user_id: str,
    override: OverrideSet,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: AssignmentService = Depends(get_assignment_service),
    cache: CacheManager = Depends(get_cache)
):
    """Force a function on or off for one user, regardless of profiles"""
    result = service.set_override(user_id, override)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern(user_id))
    return result


@user_router.delete("/{user_id}/overrides/{function_id}", status_code=204)
async def remove_override(
    user_id: str,
    function_id: str,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: AssignmentService = Depends(get_assignment_service),
    cache: CacheManager = Depends(get_cache)
):
    service.remove_override(user_id, function_id)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern(user_id))
    return None
