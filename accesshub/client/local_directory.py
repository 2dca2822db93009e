"""
Read-only view of the client system's own user tables.

Used for sessions created before the registry took over authentication.
The client's tables are never authoritative; they are only read here.

    users(id, name, email, profile_id, is_active)
    profiles(id, name)
    permissions(id, name, category)
    profile_permissions(profile_id, permission_id)
    teams(id, name)
    user_teams(user_id, team_id, role)
"""

import logging
from typing import Any, Dict, List, Optional

from supabase import Client

logger = logging.getLogger(__name__)


class LocalUserDirectory:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_user_with_permissions(self, user_id: str) -> Optional[Dict[str, Any]]:
        """User row plus profile, permission names, categories and teams."""
        result = self.supabase.table("users")\
            .select("id, name, email, profile_id, is_active")\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        if not result.data:
            return None
        user = result.data[0]
        if user.get("is_active") is False:
            return None

        profile = self._get_profile(user.get("profile_id"))
        permissions = self._get_profile_permissions(user.get("profile_id"))
        return {
            "id": user["id"],
            "name": user.get("name") or "",
            "email": user.get("email") or "",
            "profile_id": profile["id"] if profile else None,
            "profile_name": profile["name"] if profile else None,
            "permissions": [p["name"] for p in permissions],
            "permission_categories": list(dict.fromkeys(p["category"] for p in permissions if p.get("category"))),
            "teams": self._get_teams(user_id),
        }

    def _get_profile(self, profile_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not profile_id:
            return None
        result = self.supabase.table("profiles")\
            .select("id, name")\
            .eq("id", profile_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _get_profile_permissions(self, profile_id: Optional[str]) -> List[Dict[str, Any]]:
        if not profile_id:
            return []
        result = self.supabase.table("profile_permissions")\
            .select("permission_id, permissions(name, category)")\
            .eq("profile_id", profile_id)\
            .execute()
        permissions = []
        for row in result.data or []:
            if row.get("permissions") and row["permissions"].get("name"):
                permissions.append(row["permissions"])
        return permissions

    def _get_teams(self, user_id: str) -> List[Dict[str, Any]]:
        result = self.supabase.table("user_teams")\
            .select("team_id, role, teams(id, name)")\
            .eq("user_id", user_id)\
            .execute()
        teams = []
        for row in result.data or []:
            team = row.get("teams") or {}
            teams.append({
                "id": row["team_id"],
                "name": team.get("name") or "",
                "role": row.get("role") or "member",
            })
        return teams
