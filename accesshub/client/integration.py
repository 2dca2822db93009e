"""
Wiring of the identity integration inside a client system.

    integration = IdentityIntegration.from_settings(settings, supabase=local_store)
    app = FastAPI(lifespan=integration.lifespan)

The host owns the lifecycle: start() connects the cache and launches the
reconciler, stop() cancels the periodic sync and closes connections.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from supabase import Client

from accesshub.cache import CacheManager
from accesshub.client.gateway import AuthGateway
from accesshub.client.local_directory import LocalUserDirectory
from accesshub.client.registry_client import RegistryClient
from accesshub.client.sync import SyncReconciler
from accesshub.config import Settings

logger = logging.getLogger(__name__)


class IdentityIntegration:
    def __init__(
        self,
        settings: Settings,
        cache: CacheManager,
        client: RegistryClient,
        gateway: AuthGateway,
        reconciler: SyncReconciler,
    ):
        self.settings = settings
        self.cache = cache
        self.client = client
        self.gateway = gateway
        self.reconciler = reconciler

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        supabase: Optional[Client] = None,
        cache: Optional[CacheManager] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "IdentityIntegration":
        cache = cache or CacheManager(max_entries=settings.cache_max_entries)
        client = RegistryClient(
            settings.identity_url,
            system_id=settings.system_id,
            timeout=settings.identity_timeout_seconds,
            api_prefix=settings.api_prefix,
            transport=transport,
        )
        directory = LocalUserDirectory(supabase) if supabase is not None else None
        gateway = AuthGateway(client, cache, directory)
        reconciler = SyncReconciler.from_settings(client, settings)
        return cls(settings, cache, client, gateway, reconciler)

    async def start(self) -> None:
        await self.cache.connect(self.settings.redis_url)
        await self.reconciler.start()
        logger.info(f"Identity integration started for system {self.settings.system_id}")

    async def stop(self) -> None:
        await self.reconciler.stop()
        await self.client.aclose()
        await self.cache.close()
        logger.info("Identity integration stopped")

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        app.state.identity = self
        await self.start()
        try:
            yield
        finally:
            await self.stop()
