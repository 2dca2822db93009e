import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from accesshub.core.capability import CapabilityKey, validate_identifier
from accesshub.modules.systems.schemas import (
    SystemCreate, SystemUpdate, SystemResponse, SystemWithFunctionsResponse,
    FunctionResponse, SystemFunctionsResponse,
    SyncFunctionsRequest, SyncFunctionsResponse, SyncSummary, RemovedFunction,
)

logger = logging.getLogger(__name__)

# Display fields a sync may overwrite in place
SYNCED_FIELDS = ("name", "category", "description", "endpoint")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SystemService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def find_system(self, system_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("systems")\
            .select("*")\
            .eq("id", system_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def list_systems(self) -> List[SystemResponse]:
        try:
            result = self.supabase.table("systems")\
                .select("*")\
                .order("name")\
                .execute()
            return [SystemResponse(**s) for s in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_system(self, system_id: str) -> SystemWithFunctionsResponse:
        """Get system with its functions"""
        try:
            system = self.find_system(system_id)
            if not system:
                raise HTTPException(status_code=404, detail="System not found")
            functions = self._list_function_rows(system_id)
            return SystemWithFunctionsResponse(
                **system,
                functions=[FunctionResponse(**f) for f in functions],
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def create_system(self, system_data: SystemCreate) -> SystemResponse:
        """Register a new system"""
        try:
            if self.find_system(system_data.id):
                raise HTTPException(
                    status_code=409,
                    detail=f'System with id "{system_data.id}" is already registered'
                )
            result = self.supabase.table("systems").insert({
                "id": system_data.id,
                "name": system_data.name,
                "description": system_data.description or "",
                "api_url": system_data.api_url or "",
                "is_active": system_data.is_active,
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create system")
            logger.info(f"Registered system {system_data.id}")
            return SystemResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_system(self, system_id: str, system_data: SystemUpdate) -> SystemResponse:
        update_data = system_data.model_dump(exclude_none=True)
        update_data["updated_at"] = _now()
        try:
            result = self.supabase.table("systems")\
                .update(update_data)\
                .eq("id", system_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not result.data:
            raise HTTPException(status_code=404, detail="System not found")
        return SystemResponse(**result.data[0])

    def delete_system(self, system_id: str) -> bool:
        """Delete system; functions, grants and overrides cascade in the store"""
        try:
            result = self.supabase.table("systems")\
                .delete()\
                .eq("id", system_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not result.data:
            raise HTTPException(status_code=404, detail="System not found")
        logger.info(f"Deleted system {system_id}")
        return True

    def _list_function_rows(self, system_id: str) -> List[Dict[str, Any]]:
        result = self.supabase.table("functions")\
            .select("*")\
            .eq("system_id", system_id)\
            .order("category")\
            .order("name")\
            .execute()
        return result.data or []

    def list_functions(self, system_id: str) -> SystemFunctionsResponse:
        """List a system's functions grouped by category"""
        try:
            if not self.find_system(system_id):
                raise HTTPException(status_code=404, detail="System not found")
            functions = [FunctionResponse(**f) for f in self._list_function_rows(system_id)]
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        by_category: Dict[str, List[FunctionResponse]] = {}
        for func in functions:
            by_category.setdefault(func.category or "Other", []).append(func)
        return SystemFunctionsResponse(
            system_id=system_id,
            total=len(functions),
            functions=functions,
            by_category=by_category,
        )

    def sync_functions(self, system_id: str, sync_data: SyncFunctionsRequest) -> SyncFunctionsResponse:
        """
        Reconcile a system's stored functions with a client manifest.

        Creates the system when missing and the manifest describes it. New
        keys are inserted, existing keys whose display fields differ are
        updated in place, identical ones are counted as unchanged. Stored
        functions absent from the manifest are reported, never deleted.
        """
        try:
            system_id = validate_identifier(system_id, "system id")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        duplicates = sorted(k for k, n in Counter(f.key for f in sync_data.functions).items() if n > 1)
        if duplicates:
            raise HTTPException(status_code=400, detail=f"Duplicate function keys: {', '.join(duplicates)}")

        try:
            system = self.find_system(system_id)
            if not system and sync_data.system is not None:
                info = sync_data.system
                result = self.supabase.table("systems").insert({
                    "id": system_id,
                    "name": info.name or system_id,
                    "description": info.description or "",
                    "api_url": info.api_url or "",
                    "is_active": True,
                }).execute()
                system = result.data[0] if result.data else None
                if system:
                    logger.info(f"[SYNC] System \"{system['name']}\" registered by sync")
            if not system:
                raise HTTPException(status_code=404, detail="System not found and no system descriptor provided")

            existing = {f["function_key"]: f for f in self._list_function_rows(system_id)}

            new_rows = []
            updated = 0
            unchanged = 0
            for func in sync_data.functions:
                capability = CapabilityKey(system_id, func.key)
                incoming = {
                    "name": func.name,
                    "category": func.category or "",
                    "description": func.description or "",
                    "endpoint": func.endpoint or "",
                }
                current = existing.get(func.key)
                if current is None:
                    new_rows.append({
                        "id": capability.function_id,
                        "system_id": system_id,
                        "function_key": func.key,
                        **incoming,
                    })
                    continue
                if all((current.get(field) or "") == incoming[field] for field in SYNCED_FIELDS):
                    unchanged += 1
                    continue
                self.supabase.table("functions")\
                    .update({**incoming, "updated_at": _now()})\
                    .eq("id", current["id"])\
                    .execute()
                updated += 1
                logger.debug(f"[SYNC] Updated function {capability}")

            if new_rows:
                self.supabase.table("functions").insert(new_rows).execute()

            manifest_keys = {f.key for f in sync_data.functions}
            removed = [
                RemovedFunction(key=key, name=row["name"])
                for key, row in sorted(existing.items())
                if key not in manifest_keys
            ]
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"[SYNC] Synchronization of {system_id} failed: {e}")
            raise HTTPException(status_code=500, detail=f"Synchronization failed: {e}")

        summary = SyncSummary(
            total=len(sync_data.functions),
            created=len(new_rows),
            updated=updated,
            unchanged=unchanged,
            removed=len(removed),
        )
        logger.info(
            f"[SYNC] {system_id}: {summary.created} created, {summary.updated} updated, "
            f"{summary.unchanged} unchanged"
        )
        if removed:
            logger.warning(f"[SYNC] {system_id}: {len(removed)} stored functions missing from manifest")
        return SyncFunctionsResponse(
            system=system["name"],
            summary=summary,
            removed_functions=removed,
        )
