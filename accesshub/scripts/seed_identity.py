"""
Seed Identity Script
Registers the manifest's system with its functions, creates the
"Global Administrator" profile granting all of them, creates the
administrator user and assigns the profile. Safe to run repeatedly.

    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=... python -m accesshub.scripts.seed_identity
"""

import logging
import os
import sys
from typing import Any, Dict, List, Optional

from supabase import Client

from accesshub.client.errors import ManifestError
from accesshub.client.manifest import CapabilityManifest, load_manifest
from accesshub.config import get_settings
from accesshub.database.supabase_client import create_supabase_client
from accesshub.modules.auth.passwords import hash_password
from accesshub.modules.profiles.service import ProfileService
from accesshub.modules.systems.schemas import SyncFunctionsRequest
from accesshub.modules.systems.service import SystemService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ADMIN_PROFILE_NAME = "Global Administrator"


def seed_system(supabase: Client, manifest: CapabilityManifest) -> List[str]:
    """Register the system and its functions; returns the system's function ids"""
    logger.info(f"Seeding system {manifest.system.id}...")
    result = SystemService(supabase).sync_functions(
        manifest.system.id,
        SyncFunctionsRequest.model_validate(manifest.to_wire()),
    )
    summary = result.summary
    logger.info(f"Functions seeded: {summary.created} created, {summary.updated} updated, {summary.unchanged} unchanged")

    functions = supabase.table("functions")\
        .select("id")\
        .eq("system_id", manifest.system.id)\
        .execute()
    return [f["id"] for f in functions.data or []]


def seed_admin_profile(supabase: Client, function_ids: List[str]) -> str:
    """Create or refresh the administrator profile; returns its id"""
    existing = supabase.table("profiles")\
        .select("id")\
        .eq("name", ADMIN_PROFILE_NAME)\
        .limit(1)\
        .execute()
    if existing.data:
        profile_id = existing.data[0]["id"]
        logger.debug(f"Profile exists: {ADMIN_PROFILE_NAME}")
    else:
        result = supabase.table("profiles").insert({
            "name": ADMIN_PROFILE_NAME,
            "description": "Full access to every registered function",
            "system_id": None,
        }).execute()
        profile_id = result.data[0]["id"]
        logger.info(f"Created profile: {ADMIN_PROFILE_NAME}")

    ProfileService(supabase).replace_profile_functions(profile_id, function_ids)
    logger.info(f"Profile {ADMIN_PROFILE_NAME} grants {len(function_ids)} functions")
    return profile_id


def seed_admin_user(supabase: Client, email: str, password: str, name: str) -> str:
    """Create the administrator user when missing; returns its id"""
    email = email.lower()
    existing = supabase.table("users")\
        .select("id")\
        .eq("email", email)\
        .limit(1)\
        .execute()
    if existing.data:
        user_id = existing.data[0]["id"]
        supabase.table("users")\
            .update({"is_super_user": True, "is_active": True})\
            .eq("id", user_id)\
            .execute()
        logger.debug(f"User exists: {email}")
        return user_id

    result = supabase.table("users").insert({
        "email": email,
        "name": name,
        "password_hash": hash_password(password),
        "is_active": True,
        "is_super_user": True,
    }).execute()
    logger.info(f"Created administrator user: {email}")
    return result.data[0]["id"]


def assign_profile(supabase: Client, user_id: str, profile_id: str) -> None:
    existing = supabase.table("user_profiles")\
        .select("id")\
        .eq("user_id", user_id)\
        .eq("profile_id", profile_id)\
        .execute()
    if not existing.data:
        supabase.table("user_profiles").insert({"user_id": user_id, "profile_id": profile_id}).execute()
        logger.info(f"Assigned {ADMIN_PROFILE_NAME} to {user_id}")


def seed(
    supabase: Client,
    manifest: CapabilityManifest,
    admin_email: str,
    admin_password: str,
    admin_name: str = "Administrator",
) -> Dict[str, Any]:
    function_ids = seed_system(supabase, manifest)
    profile_id = seed_admin_profile(supabase, function_ids)
    user_id = seed_admin_user(supabase, admin_email, admin_password, admin_name)
    assign_profile(supabase, user_id, profile_id)
    return {"system_id": manifest.system.id, "functions": len(function_ids), "profile_id": profile_id, "user_id": user_id}


def main(manifest_path: Optional[str] = None) -> int:
    """Main function to seed the registry"""
    settings = get_settings()
    admin_email = os.environ.get("ADMIN_EMAIL")
    admin_password = os.environ.get("ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        logger.error("ADMIN_EMAIL and ADMIN_PASSWORD must be set")
        return 1

    try:
        manifest, _ = load_manifest(manifest_path or settings.permissions_file)
    except ManifestError as e:
        logger.error(str(e))
        return 1

    try:
        supabase = create_supabase_client(settings, service_role=True)
        logger.info("Starting identity seeding...")
        result = seed(supabase, manifest, admin_email, admin_password, os.environ.get("ADMIN_NAME", "Administrator"))
        logger.info(f"Seeding completed: {result['functions']} functions, administrator {result['user_id']}")
    except Exception as e:
        logger.error(f"Error during seeding: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
