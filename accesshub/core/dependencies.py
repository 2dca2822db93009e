"""
Core dependencies for route protection
"""

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from supabase import Client
from typing import Any, Dict, Optional
import logging

from accesshub.cache import CacheManager
from accesshub.config import Settings
from accesshub.database.supabase_client import get_supabase
from accesshub.modules.auth.service import AuthService, NOT_AUTHENTICATED

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache


def get_auth_service(
    supabase: Client = Depends(get_supabase),
    settings: Settings = Depends(get_app_settings),
) -> AuthService:
    return AuthService(supabase, settings)


def get_current_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> str:
    """Extract the bearer token from the Authorization header"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=NOT_AUTHENTICATED)
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_current_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Resolve the caller's active user from the bearer token"""
    return auth_service.get_current_user(token)


def is_super_user(user_data: Dict[str, Any]) -> bool:
    return bool(user_data.get("is_super_user"))


def require_super_user(user_data: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """Dependency allowing only admin-equivalent callers"""
    if not is_super_user(user_data):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions. Required: super_user"
        )
    return user_data


def require_self_or_super_user(
    user_id: str,
    user_data: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    """Allow a user to read their own data; super users may read anyone's"""
    if str(user_data["id"]) != user_id and not is_super_user(user_data):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions. Required: super_user or same user"
        )
    return user_data
