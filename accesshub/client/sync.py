"""
Capability manifest synchronization.

The reconciler pushes the client system's manifest to the registry at
startup, on a periodic timer and on demand. A sync is skipped when the
manifest file's hash matches the last successful sync. Registry or network
failures are retried a fixed number of times with a fixed delay; manifest
errors are reported immediately.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from accesshub.client.errors import ManifestError, RegistryError, RegistryUnavailableError
from accesshub.client.manifest import CapabilityManifest, load_manifest
from accesshub.client.registry_client import RegistryClient
from accesshub.config import Settings
from accesshub.modules.systems.schemas import RemovedFunction, SyncSummary

logger = logging.getLogger(__name__)

SYNC_DISABLED = "Sync disabled: IDENTITY_SYNC_TOKEN not configured"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncResult(BaseModel):
    success: bool
    summary: Optional[SyncSummary] = None
    removed_functions: List[RemovedFunction] = []
    error: Optional[str] = None
    skipped: bool = False
    timestamp: datetime = Field(default_factory=_utcnow)


class SyncReconciler:
    def __init__(
        self,
        client: RegistryClient,
        manifest_path: Union[str, Path],
        sync_token: Optional[str],
        auto_sync: bool = True,
        interval_seconds: float = 300,
        retry_attempts: int = 3,
        retry_delay_seconds: float = 5.0,
    ):
        self.client = client
        self.manifest_path = Path(manifest_path)
        self.sync_token = sync_token
        self.auto_sync = auto_sync
        self.interval_seconds = interval_seconds
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay_seconds = retry_delay_seconds
        self.last_hash: Optional[str] = None
        self.last_synced_total = 0
        self.last_result: Optional[SyncResult] = None
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, client: RegistryClient, settings: Settings) -> "SyncReconciler":
        return cls(
            client,
            manifest_path=settings.permissions_file,
            sync_token=settings.identity_sync_token,
            auto_sync=settings.auto_sync_permissions,
            interval_seconds=settings.sync_interval_minutes * 60,
            retry_attempts=settings.sync_retry_attempts,
            retry_delay_seconds=settings.sync_retry_delay_seconds,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.sync_token)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> Optional[SyncResult]:
        """Initial sync, then the periodic task when auto-sync is on."""
        if not self.enabled:
            logger.warning(f"[IDENTITY SYNC] {SYNC_DISABLED}")
            return None

        logger.info(
            f"[IDENTITY SYNC] Starting: url={self.client.base_url} "
            f"auto_sync={self.auto_sync} interval={self.interval_seconds}s"
        )
        result = await self.reconcile()
        if self.auto_sync and not self.running:
            self._task = asyncio.create_task(self._run_periodically())
            logger.info("[IDENTITY SYNC] Periodic synchronization scheduled")
        return result

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[IDENTITY SYNC] Synchronization stopped")

    async def _run_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.reconcile()
            except Exception as e:
                # keep the timer alive; the next tick retries
                logger.exception(f"[IDENTITY SYNC] Periodic sync crashed: {e}")

    async def reconcile(self, force: bool = False) -> SyncResult:
        """Sync the manifest unless its hash matches the last successful sync."""
        if not self.enabled:
            return self._finish(SyncResult(success=False, error=SYNC_DISABLED))

        try:
            manifest, digest = load_manifest(self.manifest_path)
        except ManifestError as e:
            logger.error(f"[IDENTITY SYNC] {e}")
            return self._finish(SyncResult(success=False, error=str(e)))

        if not force and digest == self.last_hash:
            logger.info("[IDENTITY SYNC] No manifest changes detected")
            total = self.last_synced_total
            return self._finish(SyncResult(
                success=True,
                skipped=True,
                summary=SyncSummary(total=total, unchanged=total),
            ))

        result = await self._sync_with_retry(manifest)
        if result.success:
            self.last_hash = digest
            self.last_synced_total = len(manifest.functions)
        return self._finish(result)

    async def force_sync(self) -> SyncResult:
        logger.info("[IDENTITY SYNC] Manual synchronization requested")
        return await self.reconcile(force=True)

    async def check_connectivity(self) -> bool:
        return await self.client.health_check()

    async def _sync_with_retry(self, manifest: CapabilityManifest) -> SyncResult:
        logger.info(f"[IDENTITY SYNC] Syncing {len(manifest.functions)} functions of {manifest.system.id}")
        last_error = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                response = await self.client.sync_functions(manifest, self.sync_token)
            except (RegistryError, RegistryUnavailableError) as e:
                last_error = str(e)
                if attempt < self.retry_attempts:
                    logger.warning(
                        f"[IDENTITY SYNC] Attempt {attempt}/{self.retry_attempts} failed: {e}; "
                        f"retrying in {self.retry_delay_seconds}s"
                    )
                    await asyncio.sleep(self.retry_delay_seconds)
                continue

            summary = response.summary
            logger.info(
                f"[IDENTITY SYNC] Done: {summary.created} created, {summary.updated} updated, "
                f"{summary.unchanged} unchanged"
            )
            if summary.removed:
                logger.warning(
                    f"[IDENTITY SYNC] {summary.removed} registry functions are no longer in the manifest"
                )
            return SyncResult(
                success=True,
                summary=summary,
                removed_functions=response.removed_functions,
            )

        logger.error(f"[IDENTITY SYNC] Synchronization failed after {self.retry_attempts} attempts: {last_error}")
        return SyncResult(success=False, error=last_error)

    def _finish(self, result: SyncResult) -> SyncResult:
        self.last_result = result
        return result
