from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional

from accesshub.cache import CacheKeys, CacheManager
from accesshub.core.dependencies import get_auth_service, get_cache, get_current_user
from accesshub.core.rate_limit import limiter, login_limit
from accesshub.modules.auth.schemas import (
    LoginRequest, RegisterRequest, RefreshRequest, LogoutRequest, TokenResponse,
    CurrentUserResponse, TokenValidationRequest, TokenValidationResponse,
)
from accesshub.modules.auth.service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])
validation_router = APIRouter(prefix="/validate", tags=["validation"])


def _client_info(request: Request) -> Dict[str, str]:
    return {
        "ip_address": request.client.host if request.client else "",
        "user_agent": request.headers.get("user-agent", ""),
    }


@router.post("/login", response_model=TokenResponse)
@limiter.limit(login_limit)
async def login(
    request: Request,
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access and refresh tokens"""
    return service.login(login_data, **_client_info(request))


@router.post("/register", response_model=TokenResponse, status_code=201)
@limiter.limit(login_limit)
async def register(
    request: Request,
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Create an account and sign it in"""
    return service.register(register_data, **_client_info(request))


@router.post("/refresh", response_model=TokenResponse)
@limiter.limit(login_limit)
async def refresh(
    request: Request,
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Trade a refresh token for a new token pair"""
    return service.refresh(body.refresh_token, **_client_info(request))


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service)
):
    """Current authenticated user and their assigned profiles"""
    return service.describe_user(current_user)


@router.post("/logout", status_code=200)
async def logout(
    request: Request,
    body: Optional[LogoutRequest] = None,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
    cache: CacheManager = Depends(get_cache)
):
    """Revoke the given refresh token and drop the user's cached resolutions"""
    user_id = str(current_user["id"])
    if body and body.refresh_token:
        service.revoke_refresh_token(user_id, body.refresh_token)
    service.record_event("logout", user_id=user_id, **_client_info(request))
    await cache.invalidate_pattern(CacheKeys.user_permissions_pattern(user_id))
    return {"message": "Logged out successfully"}


@validation_router.post("/token", response_model=TokenValidationResponse, response_model_exclude_none=True)
async def validate_token(
    body: TokenValidationRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Validate a token on behalf of a client system"""
    if not body.token:
        return JSONResponse(status_code=400, content={"valid": False, "error": "Token not provided"})
    user = service.validate_token(body.token)
    if user is None:
        return JSONResponse(status_code=401, content={"valid": False, "error": "Invalid or expired token"})
    return TokenValidationResponse(valid=True, user=user)
