"""
HTTP client for the identity registry, used by client systems.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from accesshub.client.errors import RegistryError, RegistryUnavailableError
from accesshub.client.manifest import CapabilityManifest
from accesshub.modules.systems.schemas import SyncFunctionsResponse

logger = logging.getLogger(__name__)


class RegistryClient:
    """
    Thin async wrapper around the registry's HTTP surface.

    Usage:
        client = RegistryClient("http://identity:3001", system_id="nup-kan")
        user = await client.validate_token(token)
        await client.aclose()
    """

    def __init__(
        self,
        base_url: str,
        system_id: str,
        timeout: float = 10.0,
        api_prefix: str = "/api",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.system_id = system_id
        self.api_prefix = api_prefix
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def _request(self, method: str, path: str, token: Optional[str] = None, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            return await self.client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise RegistryUnavailableError(f"Registry timed out on {method} {path}") from e
        except httpx.HTTPError as e:
            raise RegistryUnavailableError(f"Registry unreachable on {method} {path}: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        detail = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = body.get("detail") or body.get("error") or body.get("message")
        raise RegistryError(response.status_code, str(detail) if detail else None)

    @staticmethod
    def _json_object(response: httpx.Response) -> Dict[str, Any]:
        """Body of a successful response, which must be a JSON object."""
        try:
            body = response.json()
        except ValueError as e:
            raise RegistryError(response.status_code, f"Malformed registry response: {e}") from e
        if not isinstance(body, dict):
            raise RegistryError(response.status_code, "Malformed registry response: expected a JSON object")
        return body

    def _api(self, path: str) -> str:
        return f"{self.api_prefix}{path}"

    async def validate_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the token's user, or None when the registry rejects it."""
        response = await self._request("POST", self._api("/validate/token"), json={"token": token})
        if response.status_code in (400, 401):
            return None
        self._raise_for_status(response)
        data = self._json_object(response)
        if not data.get("valid") or not data.get("user"):
            return None
        return data["user"]

    async def get_me(self, token: str) -> Dict[str, Any]:
        response = await self._request("GET", self._api("/auth/me"), token=token)
        self._raise_for_status(response)
        return self._json_object(response)

    async def get_system_permissions(
        self, user_id: str, token: str, system_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Resolved permissions of user_id within this (or the given) system."""
        system_id = system_id or self.system_id
        response = await self._request(
            "GET", self._api(f"/users/{user_id}/systems/{system_id}/permissions"), token=token
        )
        self._raise_for_status(response)
        return self._json_object(response)

    async def sync_functions(self, manifest: CapabilityManifest, token: str) -> SyncFunctionsResponse:
        response = await self._request(
            "POST",
            self._api(f"/systems/{manifest.system.id}/sync-functions"),
            token=token,
            json=manifest.to_wire(),
        )
        self._raise_for_status(response)
        try:
            return SyncFunctionsResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RegistryError(response.status_code, f"Malformed sync response: {e}") from e

    async def health_check(self) -> bool:
        try:
            response = await self._request("GET", "/health")
        except RegistryUnavailableError as e:
            logger.error(f"Registry health check failed: {e}")
            return False
        return response.is_success

    async def aclose(self) -> None:
        await self.client.aclose()
