"""
Per-request authentication for client systems.

A bearer token is validated against the registry and the caller's
permissions for this system are fetched from it; without a token, a local
session is resolved from the client's own tables. Both paths are cached:
registry-validated contexts for the medium TTL, local contexts for the short
one.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import Field

from accesshub.cache import TTL, CacheKeys, CacheManager
from accesshub.client.errors import RegistryError, RegistryUnavailableError
from accesshub.client.local_directory import LocalUserDirectory
from accesshub.client.registry_client import RegistryClient
from accesshub.core.schemas import CamelModel

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "User"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TeamMembership(CamelModel):
    id: str
    name: str = ""
    role: str = "member"


class AuthContext(CamelModel):
    user_id: str
    user_name: str = ""
    user_email: str = ""
    permissions: List[str] = []  # display names, checked by has_permission
    function_keys: List[str] = []
    permission_categories: List[str] = []
    profile_id: Optional[str] = None
    profile_name: str = DEFAULT_PROFILE_NAME
    teams: List[TeamMembership] = []
    session_id: str
    is_authenticated: bool = True
    authenticated_at: datetime = Field(default_factory=_utcnow)


class AuthGateway:
    def __init__(
        self,
        client: RegistryClient,
        cache: CacheManager,
        directory: Optional[LocalUserDirectory] = None,
    ):
        self.client = client
        self.cache = cache
        self.directory = directory

    @property
    def system_id(self) -> str:
        return self.client.system_id

    async def authenticate(
        self,
        bearer_token: Optional[str] = None,
        session_user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Optional[AuthContext]:
        """
        Resolve the caller's AuthContext.

        A present bearer token decides the outcome on its own; the local
        session is only consulted when no token was sent.
        """
        if bearer_token:
            return await self._authenticate_token(bearer_token)
        if session_user_id and self.directory is not None:
            return await self._authenticate_session(str(session_user_id), session_id or "no-session")
        return None

    async def _authenticate_token(self, token: str) -> Optional[AuthContext]:
        token_key = CacheKeys.auth_token(token)
        cached_user_id = await self.cache.get(token_key)
        if cached_user_id is not None:
            cached = await self.cache.get(CacheKeys.token_context(str(cached_user_id), token))
            if cached is not None:
                return AuthContext.model_validate(cached)

        try:
            user = await self.client.validate_token(token)
            if not user:
                return None
            identity = await self._get_identity(str(user["id"]), token)
        except (RegistryError, RegistryUnavailableError) as e:
            logger.warning(f"Token authentication failed: {e}")
            return None

        me = identity["user"]
        permissions = identity["permissions"]
        context = AuthContext(
            user_id=str(me["id"]),
            user_name=me.get("name") or "",
            user_email=me.get("email") or "",
            permissions=[p["name"] for p in permissions],
            function_keys=[p["functionKey"] for p in permissions if p.get("functionKey")],
            permission_categories=list(dict.fromkeys(p["category"] for p in permissions if p.get("category"))),
            profile_id=me.get("profile_id"),
            profile_name=me.get("profile_name") or DEFAULT_PROFILE_NAME,
            session_id=f"identity-{me['id']}",
        )
        # user-scoped, so invalidate_user clears it by pattern
        await self.cache.set(
            CacheKeys.token_context(context.user_id, token),
            context.model_dump(mode="json", by_alias=True),
            TTL.MEDIUM,
        )
        await self.cache.set(token_key, context.user_id, TTL.MEDIUM)
        return context

    async def _get_identity(self, user_id: str, token: str) -> Dict[str, Any]:
        """User profile and this system's permissions from the registry, cached per user."""
        cache_key = CacheKeys.identity_user(user_id, self.system_id)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        me = await self.client.get_me(token)
        try:
            data = await self.client.get_system_permissions(user_id, token)
            permissions = data.get("permissions") or []
        except RegistryError as e:
            # Unknown system or no visibility: the user simply holds nothing here
            logger.warning(f"Could not load permissions of {user_id} in {self.system_id}: {e}")
            permissions = []

        identity = {"user": me, "permissions": permissions}
        await self.cache.set(cache_key, identity, TTL.MEDIUM)
        return identity

    async def _authenticate_session(self, user_id: str, session_id: str) -> Optional[AuthContext]:
        cache_key = CacheKeys.auth_context(user_id, session_id)
        cached = await self.cache.get(cache_key)
        if cached is not None and cached.get("userId") == user_id:
            return AuthContext.model_validate(cached)

        user = self.directory.get_user_with_permissions(user_id)
        if not user:
            return None

        context = AuthContext(
            user_id=str(user["id"]),
            user_name=user["name"],
            user_email=user["email"],
            permissions=user["permissions"],
            permission_categories=user["permission_categories"],
            profile_id=user["profile_id"],
            profile_name=user["profile_name"] or DEFAULT_PROFILE_NAME,
            teams=[TeamMembership(**t) for t in user["teams"]],
            session_id=session_id,
        )
        await self.cache.set(cache_key, context.model_dump(mode="json", by_alias=True), TTL.SHORT)
        return context

    @staticmethod
    def has_permission(context: Optional[AuthContext], required: Union[str, Iterable[str]]) -> bool:
        """True only when every required permission is held."""
        if context is None or not context.is_authenticated:
            return False
        required = [required] if isinstance(required, str) else list(required)
        granted = set(context.permissions)
        return all(name in granted for name in required)

    @staticmethod
    def has_team_access(
        context: Optional[AuthContext], team_id: str, required_role: Optional[str] = None
    ) -> bool:
        if context is None or not context.is_authenticated:
            return False
        membership = next((t for t in context.teams if t.id == team_id), None)
        if membership is None:
            return False
        return required_role is None or membership.role == required_role

    async def invalidate_user(self, user_id: str) -> None:
        """Drop a user's cached registry data, token contexts and local session contexts."""
        await self.cache.invalidate_pattern(CacheKeys.identity_user_pattern(user_id))
        await self.cache.invalidate_pattern(CacheKeys.token_context_pattern(user_id))
        await self.cache.invalidate_pattern(CacheKeys.auth_context_pattern(user_id))

    async def logout(self, token: Optional[str], user_id: Optional[str]) -> None:
        if token:
            token_key = CacheKeys.auth_token(token)
            owner = await self.cache.get(token_key)
            await self.cache.invalidate(token_key)
            if owner is not None:
                await self.cache.invalidate(CacheKeys.token_context(str(owner), token))
        if user_id:
            await self.invalidate_user(user_id)
