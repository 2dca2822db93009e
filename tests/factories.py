"""Row builders for tests; they write straight to the fake store."""

from typing import Any, Dict, Iterable, List, Optional

from accesshub.core.capability import CapabilityKey
from accesshub.modules.auth.passwords import hash_password

TEST_PASSWORD = "secret123"
JWT_SECRET = "test-secret"


def make_user(store, email: str, name: str = "Test User", is_super_user: bool = False,
              is_active: bool = True, password: str = TEST_PASSWORD) -> Dict[str, Any]:
    return store.table("users").insert({
        "email": email,
        "name": name,
        "password_hash": hash_password(password, iterations=1000),
        "is_active": is_active,
        "is_super_user": is_super_user,
    }).execute().data[0]


def make_system(store, system_id: str, name: Optional[str] = None) -> Dict[str, Any]:
    return store.table("systems").insert({"id": system_id, "name": name or system_id}).execute().data[0]


def make_functions(store, system_id: str, keys: Iterable[str], category: str = "Tasks") -> List[Dict[str, Any]]:
    rows = [
        {
            "id": CapabilityKey(system_id, key).function_id,
            "system_id": system_id,
            "function_key": key,
            "name": key.replace("-", " ").title(),
            "category": category,
        }
        for key in keys
    ]
    return store.table("functions").insert(rows).execute().data


def make_profile(store, name: str, function_ids: Iterable[str] = (), system_id: Optional[str] = None,
                 granted: bool = True) -> Dict[str, Any]:
    profile = store.table("profiles").insert({"name": name, "system_id": system_id}).execute().data[0]
    rows = [{"profile_id": profile["id"], "function_id": fid, "granted": granted} for fid in function_ids]
    if rows:
        store.table("profile_functions").insert(rows).execute()
    return profile


def assign(store, user_id: str, profile_id: str) -> None:
    store.table("user_profiles").insert({"user_id": user_id, "profile_id": profile_id}).execute()


def override(store, user_id: str, function_id: str, granted: bool, reason: str = "") -> None:
    store.table("user_function_overrides").insert({
        "user_id": user_id,
        "function_id": function_id,
        "granted": granted,
        "reason": reason,
    }).execute()
