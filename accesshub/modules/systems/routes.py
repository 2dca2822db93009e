from fastapi import APIRouter, Depends
from supabase import Client
from typing import Any, Dict, List

from accesshub.cache import CacheKeys, CacheManager
from accesshub.core.dependencies import get_cache, get_current_user, require_super_user
from accesshub.database.supabase_client import get_supabase
from accesshub.modules.systems.schemas import (
    SystemCreate, SystemUpdate, SystemResponse, SystemWithFunctionsResponse,
    SystemFunctionsResponse, SyncFunctionsRequest, SyncFunctionsResponse,
)
from accesshub.modules.systems.service import SystemService

router = APIRouter(prefix="/systems", tags=["systems"])


def get_system_service(supabase: Client = Depends(get_supabase)) -> SystemService:
    return SystemService(supabase)


@router.get("", response_model=List[SystemResponse])
async def list_systems(
    user_data: Dict[str, Any] = Depends(get_current_user),
    service: SystemService = Depends(get_system_service)
):
    return service.list_systems()


@router.post("", response_model=SystemResponse, status_code=201)
async def create_system(
    system_data: SystemCreate,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: SystemService = Depends(get_system_service)
):
    """Register a new client system"""
    return service.create_system(system_data)


@router.get("/{system_id}", response_model=SystemWithFunctionsResponse)
async def get_system(
    system_id: str,
    user_data: Dict[str, Any] = Depends(get_current_user),
    service: SystemService = Depends(get_system_service)
):
    return service.get_system(system_id)


@router.patch("/{system_id}", response_model=SystemResponse)
async def update_system(
    system_id: str,
    system_data: SystemUpdate,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: SystemService = Depends(get_system_service),
    cache: CacheManager = Depends(get_cache)
):
    system = service.update_system(system_id, system_data)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern())
    return system


@router.delete("/{system_id}", status_code=204)
async def delete_system(
    system_id: str,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: SystemService = Depends(get_system_service),
    cache: CacheManager = Depends(get_cache)
):
    """Remove a system together with its functions, grants and overrides"""
    service.delete_system(system_id)
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern())
    return None


@router.get("/{system_id}/functions", response_model=SystemFunctionsResponse)
async def list_system_functions(
    system_id: str,
    user_data: Dict[str, Any] = Depends(get_current_user),
    service: SystemService = Depends(get_system_service)
):
    return service.list_functions(system_id)


@router.post("/{system_id}/sync-functions", response_model=SyncFunctionsResponse)
async def sync_functions(
    system_id: str,
    sync_data: SyncFunctionsRequest,
    admin: Dict[str, Any] = Depends(require_super_user),
    service: SystemService = Depends(get_system_service),
    cache: CacheManager = Depends(get_cache)
):
    """Reconcile a client system's manifest with the stored functions"""
    result = service.sync_functions(system_id, sync_data)
    if result.summary.created or result.summary.updated:
        await cache.invalidate_pattern(CacheKeys.user_permissions_pattern())
    return result
