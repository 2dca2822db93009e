"""
Permission resolution.

A user's effective capabilities are the union of the functions granted by
every profile assigned to them, after which the user's overrides are applied:
an override always decides its function's outcome, in either direction.
Anything not granted that way is denied.

Resolution only reads the store. Callers cache the result (short TTL) and
invalidate it after writes to assignments, overrides or grants.
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel
from supabase import Client

from accesshub.cache import TTL, CacheKeys, CacheManager
from accesshub.core.capability import CapabilityKey
from accesshub.core.schemas import CamelModel

logger = logging.getLogger(__name__)


class ResolutionStatus(str, Enum):
    OK = "ok"
    SYSTEM_NOT_FOUND = "system_not_found"


class PermissionSource(str, Enum):
    PROFILE = "profile"
    OVERRIDE = "override"


class CapabilityDescriptor(CamelModel):
    function_id: str
    function_key: str
    name: str
    category: str = ""
    description: str = ""
    endpoint: str = ""
    system_id: str
    system_name: Optional[str] = None
    source: PermissionSource = PermissionSource.PROFILE


class ResolvedPermissions(BaseModel):
    user_id: str
    system_id: Optional[str] = None
    system_name: Optional[str] = None
    status: ResolutionStatus = ResolutionStatus.OK
    permissions: List[CapabilityDescriptor] = []

    @property
    def found(self) -> bool:
        return self.status is ResolutionStatus.OK

    @property
    def granted_keys(self) -> Set[str]:
        return {p.function_key for p in self.permissions}


class PermissionCheck(BaseModel):
    granted: bool
    reason: Optional[str] = None
    source: Optional[PermissionSource] = None


class PermissionResolver:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def resolve(self, user_id: str, system_id: Optional[str] = None) -> ResolvedPermissions:
        """
        Compute the functions user_id may use, optionally within one system.

        Unknown users resolve to an empty set. An unknown system yields
        status SYSTEM_NOT_FOUND so callers can answer 404 instead of
        "no access".
        """
        system_name = None
        scoped_functions: Optional[Dict[str, Dict[str, Any]]] = None

        if system_id is not None:
            system = self._get_system(system_id)
            if system is None:
                return ResolvedPermissions(
                    user_id=user_id,
                    system_id=system_id,
                    status=ResolutionStatus.SYSTEM_NOT_FOUND,
                )
            system_name = system.get("name")
            scoped_functions = {f["id"]: f for f in self._functions_of_system(system_id)}
            if not scoped_functions:
                return ResolvedPermissions(user_id=user_id, system_id=system_id, system_name=system_name)

        scope = list(scoped_functions) if scoped_functions is not None else None

        # Profile layer: union of granted rows
        effective: Dict[str, PermissionSource] = {}
        for function_id in self._profile_granted_function_ids(user_id, scope):
            effective[function_id] = PermissionSource.PROFILE

        # Override layer, strictly after the profile layer
        for override in self._overrides(user_id, scope):
            if override["granted"]:
                effective[override["function_id"]] = PermissionSource.OVERRIDE
            else:
                effective.pop(override["function_id"], None)

        if not effective:
            return ResolvedPermissions(user_id=user_id, system_id=system_id, system_name=system_name)

        if scoped_functions is not None:
            function_rows = [scoped_functions[fid] for fid in effective if fid in scoped_functions]
        else:
            function_rows = self._functions_by_id(effective)
        system_names = (
            {system_id: system_name} if system_id is not None
            else self._system_names({f["system_id"] for f in function_rows})
        )

        permissions = [
            CapabilityDescriptor(
                function_id=f["id"],
                function_key=f["function_key"],
                name=f["name"],
                category=f.get("category") or "",
                description=f.get("description") or "",
                endpoint=f.get("endpoint") or "",
                system_id=f["system_id"],
                system_name=system_names.get(f["system_id"]),
                source=effective[f["id"]],
            )
            for f in function_rows
        ]
        permissions.sort(key=lambda p: (p.system_id, p.function_key))
        return ResolvedPermissions(
            user_id=user_id,
            system_id=system_id,
            system_name=system_name,
            permissions=permissions,
        )

    def check(self, user_id: str, system_id: str, function_key: str) -> PermissionCheck:
        """Decide a single function without resolving the whole set"""
        try:
            capability = CapabilityKey(system_id, function_key)
        except ValueError as e:
            return PermissionCheck(granted=False, reason=str(e))

        function = self.supabase.table("functions")\
            .select("id")\
            .eq("system_id", capability.system_id)\
            .eq("function_key", capability.key)\
            .limit(1)\
            .execute()
        if not function.data:
            return PermissionCheck(granted=False, reason="Function not found")
        function_id = function.data[0]["id"]

        overrides = self._overrides(user_id, [function_id])
        if overrides:
            granted = bool(overrides[0]["granted"])
            return PermissionCheck(
                granted=granted,
                reason="Granted by user override" if granted else "Revoked by user override",
                source=PermissionSource.OVERRIDE,
            )

        if self._profile_granted_function_ids(user_id, [function_id]):
            return PermissionCheck(granted=True, reason="Granted by profile", source=PermissionSource.PROFILE)
        return PermissionCheck(granted=False, reason="Not granted")

    def _get_system(self, system_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("systems")\
            .select("id, name")\
            .eq("id", system_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _functions_of_system(self, system_id: str) -> List[Dict[str, Any]]:
        result = self.supabase.table("functions")\
            .select("*")\
            .eq("system_id", system_id)\
            .execute()
        return result.data or []

    def _functions_by_id(self, function_ids: Iterable[str]) -> List[Dict[str, Any]]:
        ids = list(function_ids)
        if not ids:
            return []
        result = self.supabase.table("functions")\
            .select("*")\
            .in_("id", ids)\
            .execute()
        return result.data or []

    def _system_names(self, system_ids: Set[str]) -> Dict[str, str]:
        if not system_ids:
            return {}
        result = self.supabase.table("systems")\
            .select("id, name")\
            .in_("id", sorted(system_ids))\
            .execute()
        return {s["id"]: s["name"] for s in result.data or []}

    def _assigned_profile_ids(self, user_id: str) -> List[str]:
        result = self.supabase.table("user_profiles")\
            .select("profile_id")\
            .eq("user_id", user_id)\
            .execute()
        return [row["profile_id"] for row in result.data or []]

    def _profile_granted_function_ids(self, user_id: str, scope: Optional[List[str]]) -> Set[str]:
        profile_ids = self._assigned_profile_ids(user_id)
        if not profile_ids:
            return set()
        query = self.supabase.table("profile_functions")\
            .select("function_id")\
            .in_("profile_id", profile_ids)\
            .eq("granted", True)
        if scope is not None:
            query = query.in_("function_id", scope)
        result = query.execute()
        return {row["function_id"] for row in result.data or []}

    def _overrides(self, user_id: str, scope: Optional[List[str]]) -> List[Dict[str, Any]]:
        query = self.supabase.table("user_function_overrides")\
            .select("function_id, granted")\
            .eq("user_id", user_id)
        if scope is not None:
            query = query.in_("function_id", scope)
        result = query.execute()
        return result.data or []


async def resolve_cached(
    resolver: PermissionResolver,
    cache: CacheManager,
    user_id: str,
    system_id: Optional[str] = None,
) -> ResolvedPermissions:
    """Resolve through the volatile cache; unknown systems are never cached"""
    key = CacheKeys.user_permissions(user_id, system_id)
    cached = await cache.get(key)
    if cached is not None:
        return ResolvedPermissions.model_validate(cached)

    resolved = resolver.resolve(user_id, system_id)
    if resolved.found:
        await cache.set(key, resolved.model_dump(mode="json"), TTL.SHORT)
    return resolved
