from fastapi import Request
from supabase import create_client, Client
from accesshub.config import Settings


def create_supabase_client(settings: Settings, service_role: bool = False) -> Client:
    """Build a store client. service_role bypasses RLS; use in scripts and background workers."""
    key = settings.supabase_key
    if service_role and settings.supabase_service_role_key:
        key = settings.supabase_service_role_key
    return create_client(settings.supabase_url, key)


def get_supabase(request: Request) -> Client:
    """Dependency returning the store client the application was built with."""
    return request.app.state.supabase
