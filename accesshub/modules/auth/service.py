import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from accesshub.config import Settings
from accesshub.modules.auth.passwords import verify_password
from accesshub.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, CurrentUserResponse,
)
from accesshub.modules.auth.tokens import (
    create_access_token, decode_access_token, generate_refresh_token, hash_refresh_token,
)
from accesshub.modules.users.schemas import UserCreate
from accesshub.modules.users.service import UserService

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Not authenticated"
INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH_TOKEN = "Invalid refresh token"


def strip_credentials(user_row: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a users row without the password hash."""
    return {k: v for k, v in user_row.items() if k != "password_hash"}


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class AuthService:
    def __init__(self, supabase: Client, settings: Settings):
        self.supabase = supabase
        self.settings = settings

    def _get_user_row(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("users")\
            .select("*")\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _get_user_row_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("users")\
            .select("*")\
            .eq("email", email.lower())\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def record_event(
        self,
        event_type: str,
        user_id: Optional[str] = None,
        success: bool = True,
        ip_address: str = "",
        user_agent: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append an auth_events row. A failed write is logged and does not fail the request."""
        try:
            self.supabase.table("auth_events").insert({
                "user_id": user_id,
                "event_type": event_type,
                "auth_method": "password",
                "ip_address": ip_address or "",
                "user_agent": user_agent or "",
                "success": success,
                "metadata": json.dumps(metadata) if metadata else "",
            }).execute()
        except Exception as e:
            logger.error(f"Could not record auth event {event_type} for {user_id}: {e}")

    def _issue_tokens(self, user: Dict[str, Any]) -> TokenResponse:
        """Access token plus a stored refresh token for the user."""
        access_token = create_access_token(
            user,
            self.settings.jwt_secret,
            algorithm=self.settings.jwt_algorithm,
            expires_minutes=self.settings.jwt_expiration_minutes,
        )
        refresh_token = generate_refresh_token()
        expires_at = datetime.now(timezone.utc) + timedelta(days=self.settings.refresh_token_expiration_days)
        self.supabase.table("refresh_tokens").insert({
            "user_id": str(user["id"]),
            "token_hash": hash_refresh_token(refresh_token),
            "expires_at": expires_at.isoformat(),
        }).execute()
        return TokenResponse(
            access_token=access_token,
            expires_in=self.settings.jwt_expiration_minutes * 60,
            refresh_token=refresh_token,
            user_id=str(user["id"]),
            email=user["email"],
        )

    def login(self, login_data: LoginRequest, ip_address: str = "", user_agent: str = "") -> TokenResponse:
        """Exchange email + password for an access and a refresh token"""
        try:
            user = self._get_user_row_by_email(login_data.email)
        except Exception as e:
            logger.error(f"Login lookup failed: {e}")
            raise HTTPException(status_code=500, detail="Login failed")

        if not user or not verify_password(login_data.password, user.get("password_hash")):
            self.record_event(
                "login_failed",
                user_id=str(user["id"]) if user else None,
                success=False,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata=None if user else {"email": login_data.email.lower()},
            )
            raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)
        if not user.get("is_active", True):
            self.record_event(
                "login_failed", user_id=str(user["id"]), success=False,
                ip_address=ip_address, user_agent=user_agent, metadata={"reason": "inactive"},
            )
            raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

        try:
            tokens = self._issue_tokens(user)
        except Exception as e:
            logger.error(f"Could not issue tokens for {user['id']}: {e}")
            raise HTTPException(status_code=500, detail="Login failed")

        self.record_event("login", user_id=str(user["id"]), ip_address=ip_address, user_agent=user_agent)
        logger.info(f"User {user['id']} logged in")
        return tokens

    def register(self, register_data: RegisterRequest, ip_address: str = "", user_agent: str = "") -> TokenResponse:
        """Self-service account creation; signs the new user in"""
        if not self.settings.enable_registration:
            raise HTTPException(status_code=403, detail="Registration is disabled")

        created = UserService(self.supabase).create_user(UserCreate(
            email=register_data.email,
            name=register_data.name,
            password=register_data.password,
        ))
        try:
            user = self._get_user_row(created.id)
            tokens = self._issue_tokens(user)
        except Exception as e:
            logger.error(f"Could not issue tokens for new user {created.id}: {e}")
            raise HTTPException(status_code=500, detail="Registration failed")

        self.record_event("register", user_id=created.id, ip_address=ip_address, user_agent=user_agent)
        logger.info(f"User {created.id} registered")
        return tokens

    def refresh(self, refresh_token: str, ip_address: str = "", user_agent: str = "") -> TokenResponse:
        """
        Rotate a refresh token.

        The presented token is consumed and a new access + refresh pair is
        returned. Unknown, expired or orphaned tokens get a 401.
        """
        token_hash = hash_refresh_token(refresh_token)
        try:
            result = self.supabase.table("refresh_tokens")\
                .select("*")\
                .eq("token_hash", token_hash)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Refresh token lookup failed: {e}")
            raise HTTPException(status_code=500, detail="Token refresh failed")

        stored = result.data[0] if result.data else None
        if not stored:
            raise HTTPException(status_code=401, detail=INVALID_REFRESH_TOKEN)

        try:
            self.supabase.table("refresh_tokens")\
                .delete()\
                .eq("id", stored["id"])\
                .execute()

            if _parse_timestamp(stored["expires_at"]) <= datetime.now(timezone.utc):
                raise HTTPException(status_code=401, detail="Refresh token expired")

            user = self._get_user_row(stored["user_id"])
            if not user or not user.get("is_active", True):
                raise HTTPException(status_code=401, detail=INVALID_REFRESH_TOKEN)

            tokens = self._issue_tokens(user)
        except HTTPException:
            self.record_event(
                "token_refresh", user_id=stored["user_id"], success=False,
                ip_address=ip_address, user_agent=user_agent,
            )
            raise
        except Exception as e:
            logger.error(f"Token refresh failed for {stored['user_id']}: {e}")
            raise HTTPException(status_code=500, detail="Token refresh failed")

        self.record_event("token_refresh", user_id=str(user["id"]), ip_address=ip_address, user_agent=user_agent)
        return tokens

    def revoke_refresh_token(self, user_id: str, refresh_token: str) -> None:
        """Delete one of the user's refresh tokens."""
        try:
            self.supabase.table("refresh_tokens")\
                .delete()\
                .eq("user_id", user_id)\
                .eq("token_hash", hash_refresh_token(refresh_token))\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def validate_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the token's active user (without credentials), or None."""
        if not token:
            return None
        payload = decode_access_token(token, self.settings.jwt_secret, self.settings.jwt_algorithm)
        if not payload:
            return None
        user = self._get_user_row(payload["user_id"])
        if not user or not user.get("is_active", True):
            return None
        return strip_credentials(user)

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Like validate_token but raises a generic 401."""
        user = self.validate_token(token)
        if user is None:
            raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED)
        return user

    def get_user_profiles(self, user_id: str) -> List[Dict[str, Any]]:
        assignments = self.supabase.table("user_profiles")\
            .select("profile_id")\
            .eq("user_id", user_id)\
            .execute()
        profile_ids = [a["profile_id"] for a in assignments.data or []]
        if not profile_ids:
            return []
        result = self.supabase.table("profiles")\
            .select("id, name, description, system_id")\
            .in_("id", profile_ids)\
            .order("name")\
            .execute()
        return result.data or []

    def describe_user(self, user: Dict[str, Any]) -> CurrentUserResponse:
        profiles = self.get_user_profiles(str(user["id"]))
        primary = profiles[0] if profiles else None
        return CurrentUserResponse(
            id=str(user["id"]),
            email=user["email"],
            name=user.get("name") or "",
            is_active=user.get("is_active", True),
            is_super_user=bool(user.get("is_super_user")),
            profiles=profiles,
            profile_id=primary["id"] if primary else None,
            profile_name=primary["name"] if primary else None,
        )
