"""
Manual Permission Sync Script
Pushes the local permissions.json to the identity registry once, ignoring
the last-synced hash.

    python -m accesshub.scripts.sync_permissions
"""

import asyncio
import logging
import sys
from typing import Optional

from accesshub.client.registry_client import RegistryClient
from accesshub.client.sync import SyncReconciler, SyncResult
from accesshub.config import Settings, get_settings

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)


async def run_sync(settings: Settings, client: Optional[RegistryClient] = None) -> SyncResult:
    client = client or RegistryClient(
        settings.identity_url,
        system_id=settings.system_id,
        timeout=settings.identity_timeout_seconds,
        api_prefix=settings.api_prefix,
    )
    reconciler = SyncReconciler.from_settings(client, settings)
    try:
        return await reconciler.force_sync()
    finally:
        await client.aclose()


def report(result: SyncResult) -> int:
    if not result.success:
        logger.error(f"Synchronization failed: {result.error}")
        logger.error(
            "Check that the registry is running, IDENTITY_URL is correct, "
            "IDENTITY_SYNC_TOKEN is a valid super user token and the manifest file is valid"
        )
        return 1

    logger.info("Synchronization completed")
    if result.summary:
        summary = result.summary
        logger.info(f"Total: {summary.total}")
        logger.info(f"Created: {summary.created}")
        logger.info(f"Updated: {summary.updated}")
        logger.info(f"Unchanged: {summary.unchanged}")
        if summary.removed:
            logger.warning(f"No longer in manifest: {summary.removed}")
            for func in result.removed_functions:
                logger.warning(f"  {func.key} ({func.name})")
    return 0


def main() -> int:
    settings = get_settings()
    result = asyncio.run(run_sync(settings))
    return report(result)


if __name__ == "__main__":
    sys.exit(main())
