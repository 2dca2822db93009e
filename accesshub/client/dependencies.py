"""
Route protection for client systems that embed the identity integration.

The host application stores an IdentityIntegration on app.state.identity.
"""

from fastapi import Depends, HTTPException, Request, status
from typing import Callable, Optional
import logging

from accesshub.client.gateway import AuthContext, AuthGateway
from accesshub.modules.auth.tokens import extract_bearer_token

logger = logging.getLogger(__name__)


def get_gateway(request: Request) -> AuthGateway:
    return request.app.state.identity.gateway


def _session_identity(request: Request):
    """(user_id, session_id) from a starlette session, when the host uses one."""
    if "session" not in request.scope:
        return None, None
    session = request.session
    user = session.get("user") or {}
    user_id = user.get("id") if isinstance(user, dict) else None
    return user_id or session.get("user_id"), session.get("session_id")


async def get_auth_context(
    request: Request,
    gateway: AuthGateway = Depends(get_gateway),
) -> Optional[AuthContext]:
    """AuthContext of the caller, or None. Resolved once per request."""
    if hasattr(request.state, "auth_context"):
        return request.state.auth_context
    token = extract_bearer_token(request.headers.get("Authorization"))
    session_user_id, session_id = _session_identity(request)
    context = await gateway.authenticate(
        bearer_token=token,
        session_user_id=session_user_id,
        session_id=session_id,
    )
    request.state.auth_context = context
    return context


def require_auth(context: Optional[AuthContext] = Depends(get_auth_context)) -> AuthContext:
    if context is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return context


def require_permissions(*permissions: str) -> Callable[..., AuthContext]:
    """Factory for a dependency requiring every listed permission"""
    def check_permissions(context: AuthContext = Depends(require_auth)) -> AuthContext:
        if not AuthGateway.has_permission(context, permissions):
            logger.warning(f"User {context.user_id} denied; missing one of {list(permissions)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {', '.join(permissions)}"
            )
        return context
    return check_permissions


def require_team_access(team_id_param: str, required_role: Optional[str] = None) -> Callable[..., AuthContext]:
    """Factory for a dependency requiring membership (and optionally a role) in a team"""
    async def check_team_access(
        request: Request,
        context: AuthContext = Depends(require_auth),
    ) -> AuthContext:
        team_id = request.path_params.get(team_id_param) or request.query_params.get(team_id_param)
        if not team_id and request.headers.get("content-type", "").startswith("application/json"):
            try:
                body = await request.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                team_id = body.get(team_id_param)
        if not team_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Team ID parameter '{team_id_param}' is required"
            )
        if not AuthGateway.has_team_access(context, str(team_id), required_role):
            required = f"team {team_id}" + (f" with role {required_role}" if required_role else "")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {required}"
            )
        return context
    return check_team_access
