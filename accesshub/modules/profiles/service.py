import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from accesshub.modules.profiles.schemas import (
    ProfileCreate, ProfileUpdate, ProfileResponse, ProfileWithFunctionsResponse,
    ProfileGrantResponse, BulkGrantResponse,
    UserProfileResponse, OverrideSet, OverrideResponse,
)
from accesshub.modules.systems.schemas import FunctionResponse

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _profile(row: Dict[str, Any]) -> ProfileResponse:
    return ProfileResponse(**row, is_global=row.get("system_id") is None)


def _first(result) -> Optional[Dict[str, Any]]:
    return result.data[0] if result.data else None


class ProfileService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_profile_row(self, profile_id: str) -> Dict[str, Any]:
        row = _first(self.supabase.table("profiles").select("*").eq("id", profile_id).limit(1).execute())
        if not row:
            raise HTTPException(status_code=404, detail="Profile not found")
        return row

    def _get_function_row(self, function_id: str) -> Dict[str, Any]:
        row = _first(self.supabase.table("functions").select("*").eq("id", function_id).limit(1).execute())
        if not row:
            raise HTTPException(status_code=404, detail="Function not found")
        return row

    def create_profile(self, profile_data: ProfileCreate) -> ProfileResponse:
        """Create a new profile, global or bound to one system"""
        try:
            existing = self.supabase.table("profiles")\
                .select("id")\
                .eq("name", profile_data.name)\
                .limit(1)\
                .execute()
            if existing.data:
                raise HTTPException(status_code=409, detail="A profile with this name already exists")

            if profile_data.system_id is not None:
                system = self.supabase.table("systems")\
                    .select("id")\
                    .eq("id", profile_data.system_id)\
                    .limit(1)\
                    .execute()
                if not system.data:
                    raise HTTPException(status_code=404, detail="System not found")

            result = self.supabase.table("profiles").insert({
                "name": profile_data.name,
                "description": profile_data.description or "",
                "system_id": profile_data.system_id,
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create profile")

            return _profile(result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_profile_by_id(self, profile_id: str) -> ProfileResponse:
        try:
            return _profile(self._get_profile_row(profile_id))
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_profile_with_functions(self, profile_id: str) -> ProfileWithFunctionsResponse:
        """Get profile with the functions it grants"""
        try:
            row = self._get_profile_row(profile_id)
            functions = self.get_profile_functions(profile_id)
            return ProfileWithFunctionsResponse(
                **row,
                is_global=row.get("system_id") is None,
                functions=functions,
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_profiles(
        self,
        system_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[ProfileResponse]:
        """List profiles, optionally only those bound to one system"""
        try:
            query = self.supabase.table("profiles").select("*")
            if system_id:
                query = query.eq("system_id", system_id)
            result = query.order("name")\
                .range(offset, offset + limit - 1)\
                .execute()
            return [_profile(p) for p in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_profile(self, profile_id: str, profile_data: ProfileUpdate) -> ProfileResponse:
        update_data = {"updated_at": _now()}
        if profile_data.name:
            update_data["name"] = profile_data.name
        if profile_data.description is not None:
            update_data["description"] = profile_data.description
        try:
            if "name" in update_data:
                clash = self.supabase.table("profiles")\
                    .select("id")\
                    .eq("name", update_data["name"])\
                    .neq("id", profile_id)\
                    .limit(1)\
                    .execute()
                if clash.data:
                    raise HTTPException(status_code=409, detail="A profile with this name already exists")
            result = self.supabase.table("profiles")\
                .update(update_data)\
                .eq("id", profile_id)\
                .execute()
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not result.data:
            raise HTTPException(status_code=404, detail="Profile not found")
        return _profile(result.data[0])

    def delete_profile(self, profile_id: str) -> bool:
        """Delete profile; grants and assignments cascade"""
        try:
            result = self.supabase.table("profiles")\
                .delete()\
                .eq("id", profile_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not result.data:
            raise HTTPException(status_code=404, detail="Profile not found")
        return True

    def grant_function(self, profile_id: str, function_id: str) -> ProfileGrantResponse:
        """Add a function to a profile"""
        try:
            profile = self._get_profile_row(profile_id)
            function = self._get_function_row(function_id)
            if profile.get("system_id") and profile["system_id"] != function["system_id"]:
                raise HTTPException(
                    status_code=400,
                    detail="Function belongs to a different system than the profile"
                )

            existing = self.supabase.table("profile_functions")\
                .select("id, granted")\
                .eq("profile_id", profile_id)\
                .eq("function_id", function_id)\
                .limit(1)\
                .execute()
            if existing.data and existing.data[0].get("granted", True):
                raise HTTPException(status_code=400, detail="Function already granted to profile")

            if existing.data:
                # inert granted=false row holds the (profile, function) slot
                result = self.supabase.table("profile_functions")\
                    .update({"granted": True})\
                    .eq("id", existing.data[0]["id"])\
                    .execute()
            else:
                result = self.supabase.table("profile_functions").insert({
                    "profile_id": profile_id,
                    "function_id": function_id,
                    "granted": True,
                }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to grant function")
            return ProfileGrantResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def revoke_function(self, profile_id: str, function_id: str) -> bool:
        try:
            result = self.supabase.table("profile_functions")\
                .delete()\
                .eq("profile_id", profile_id)\
                .eq("function_id", function_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not result.data:
            raise HTTPException(status_code=404, detail="Function not granted to profile")
        return True

    def get_profile_functions(self, profile_id: str) -> List[FunctionResponse]:
        """Functions a profile grants (granted=true rows only)"""
        grants = self.supabase.table("profile_functions")\
            .select("function_id")\
            .eq("profile_id", profile_id)\
            .eq("granted", True)\
            .execute()
        function_ids = [g["function_id"] for g in grants.data or []]
        if not function_ids:
            return []
        result = self.supabase.table("functions")\
            .select("*")\
            .in_("id", function_ids)\
            .order("function_key")\
            .execute()
        return [FunctionResponse(**f) for f in result.data]

    def replace_profile_functions(self, profile_id: str, function_ids: List[str]) -> BulkGrantResponse:
        """Replace every grant of a profile with the given functions"""
        try:
            profile = self._get_profile_row(profile_id)
            unique_ids = list(dict.fromkeys(function_ids))
            if unique_ids:
                found = self.supabase.table("functions")\
                    .select("id, system_id")\
                    .in_("id", unique_ids)\
                    .execute()
                found_rows = {f["id"]: f for f in found.data or []}
                missing = [fid for fid in unique_ids if fid not in found_rows]
                if missing:
                    raise HTTPException(status_code=404, detail=f"Functions not found: {', '.join(missing)}")
                if profile.get("system_id"):
                    foreign = [fid for fid, f in found_rows.items() if f["system_id"] != profile["system_id"]]
                    if foreign:
                        raise HTTPException(
                            status_code=400,
                            detail="Function belongs to a different system than the profile"
                        )

            self.supabase.table("profile_functions")\
                .delete()\
                .eq("profile_id", profile_id)\
                .execute()

            if unique_ids:
                self.supabase.table("profile_functions").insert([
                    {"profile_id": profile_id, "function_id": fid, "granted": True}
                    for fid in unique_ids
                ]).execute()

            return BulkGrantResponse(
                profile_id=profile_id,
                assigned_count=len(unique_ids),
                message=f"Updated profile with {len(unique_ids)} functions"
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))


class AssignmentService:
    """User-level links: profile assignments and per-function overrides"""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _require_user(self, user_id: str) -> None:
        result = self.supabase.table("users").select("id").eq("id", user_id).limit(1).execute()
        if not result.data:
            raise HTTPException(status_code=404, detail="User not found")

    def assign_profile(self, user_id: str, profile_id: str) -> UserProfileResponse:
        try:
            self._require_user(user_id)
            profile = self.supabase.table("profiles").select("id").eq("id", profile_id).limit(1).execute()
            if not profile.data:
                raise HTTPException(status_code=404, detail="Profile not found")

            existing = self.supabase.table("user_profiles")\
                .select("id")\
                .eq("user_id", user_id)\
                .eq("profile_id", profile_id)\
                .execute()
            if existing.data:
                raise HTTPException(status_code=400, detail="Profile already assigned to user")

            result = self.supabase.table("user_profiles").insert({
                "user_id": user_id,
                "profile_id": profile_id,
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to assign profile")
            logger.info(f"Assigned profile {profile_id} to user {user_id}")
            return UserProfileResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def unassign_profile(self, user_id: str, profile_id: str) -> bool:
        try:
            result = self.supabase.table("user_profiles")\
                .delete()\
                .eq("user_id", user_id)\
                .eq("profile_id", profile_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not result.data:
            raise HTTPException(status_code=404, detail="Profile not assigned to user")
        return True

    def list_user_profiles(self, user_id: str) -> List[ProfileResponse]:
        try:
            assignments = self.supabase.table("user_profiles")\
                .select("profile_id")\
                .eq("user_id", user_id)\
                .execute()
            profile_ids = [a["profile_id"] for a in assignments.data or []]
            if not profile_ids:
                return []
            result = self.supabase.table("profiles")\
                .select("*")\
                .in_("id", profile_ids)\
                .order("name")\
                .execute()
            return [_profile(p) for p in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def set_override(self, user_id: str, override: OverrideSet) -> OverrideResponse:
        """Create or replace the user's override for one function"""
        try:
            self._require_user(user_id)
            function = self.supabase.table("functions")\
                .select("id")\
                .eq("id", override.function_id)\
                .limit(1)\
                .execute()
            if not function.data:
                raise HTTPException(status_code=404, detail="Function not found")

            values = {"granted": override.granted, "reason": override.reason or ""}
            existing = self.supabase.table("user_function_overrides")\
                .select("id")\
                .eq("user_id", user_id)\
                .eq("function_id", override.function_id)\
                .limit(1)\
                .execute()
            if existing.data:
                result = self.supabase.table("user_function_overrides")\
                    .update(values)\
                    .eq("id", existing.data[0]["id"])\
                    .execute()
            else:
                result = self.supabase.table("user_function_overrides").insert({
                    "user_id": user_id,
                    "function_id": override.function_id,
                    **values,
                }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to store override")
            logger.info(
                f"Override for user {user_id} on {override.function_id}: "
                f"{'grant' if override.granted else 'revoke'}"
            )
            return OverrideResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def remove_override(self, user_id: str, function_id: str) -> bool:
        try:
            result = self.supabase.table("user_function_overrides")\
                .delete()\
                .eq("user_id", user_id)\
                .eq("function_id", function_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not result.data:
            raise HTTPException(status_code=404, detail="Override not found")
        return True

    def list_overrides(self, user_id: str) -> List[OverrideResponse]:
        try:
            result = self.supabase.table("user_function_overrides")\
                .select("*")\
                .eq("user_id", user_id)\
                .order("function_id")\
                .execute()
            return [OverrideResponse(**o) for o in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
