import json
import shutil
from pathlib import Path

import httpx
import pytest

from accesshub.client.registry_client import RegistryClient
from accesshub.client.sync import SYNC_DISABLED, SyncReconciler, SyncResult
from accesshub.scripts.sync_permissions import report, run_sync

from tests.factories import make_user

MANIFEST_PATH = Path(__file__).resolve().parent.parent / "permissions.json"

SMALL_MANIFEST = {
    "system": {"id": "nup-kan", "name": "NuP-Kan", "apiUrl": "http://nup-kan.test"},
    "functions": [
        {"key": "boards-list", "name": "List Boards", "category": "Boards", "endpoint": "GET /api/boards"},
        {"key": "boards-create", "name": "Create Board", "category": "Boards", "endpoint": "POST /api/boards"},
    ],
}


def sync_response(created=2, removed=()):
    return {
        "success": True,
        "message": "Synchronization completed",
        "system": "NuP-Kan",
        "summary": {"total": 2, "created": created, "updated": 0, "unchanged": 2 - created, "removed": len(removed)},
        "removedFunctions": [{"key": k, "name": k} for k in removed],
    }


class Registry:
    """Scripted registry: answers from a queue and records every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "healthy"})
        answer = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(answer, Exception):
            raise answer
        status, body = answer
        return httpx.Response(status, json=body)


@pytest.fixture
def manifest_file(settings):
    path = Path(settings.permissions_file)
    path.write_text(json.dumps(SMALL_MANIFEST))
    return path


def make_reconciler(settings, handler, **overrides):
    client = RegistryClient(settings.identity_url, settings.system_id, transport=httpx.MockTransport(handler))
    reconciler = SyncReconciler.from_settings(client, settings)
    for name, value in overrides.items():
        setattr(reconciler, name, value)
    return reconciler


class TestReconcile:
    async def test_first_sync_posts_manifest(self, settings, manifest_file):
        registry = Registry((200, sync_response()))
        reconciler = make_reconciler(settings, registry)

        result = await reconciler.reconcile()

        assert result.success is True
        assert result.summary.created == 2
        request = registry.requests[0]
        assert request.url.path == "/api/systems/nup-kan/sync-functions"
        assert request.headers["Authorization"] == "Bearer sync-token"
        body = json.loads(request.content)
        assert body["system"]["apiUrl"] == "http://nup-kan.test"
        assert [f["key"] for f in body["functions"]] == ["boards-list", "boards-create"]
        await reconciler.client.aclose()

    async def test_unchanged_manifest_is_skipped(self, settings, manifest_file):
        registry = Registry((200, sync_response()))
        reconciler = make_reconciler(settings, registry)
        await reconciler.reconcile()

        result = await reconciler.reconcile()

        assert result.skipped is True
        assert result.summary.total == 2
        assert result.summary.unchanged == 2
        assert len(registry.requests) == 1
        await reconciler.client.aclose()

    async def test_changed_manifest_is_synced_again(self, settings, manifest_file):
        registry = Registry((200, sync_response()))
        reconciler = make_reconciler(settings, registry)
        await reconciler.reconcile()

        changed = dict(SMALL_MANIFEST, functions=SMALL_MANIFEST["functions"][:1])
        manifest_file.write_text(json.dumps(changed))
        result = await reconciler.reconcile()

        assert result.skipped is False
        assert len(registry.requests) == 2
        await reconciler.client.aclose()

    async def test_force_sync_ignores_hash(self, settings, manifest_file):
        registry = Registry((200, sync_response()))
        reconciler = make_reconciler(settings, registry)
        await reconciler.reconcile()

        result = await reconciler.force_sync()

        assert result.skipped is False
        assert len(registry.requests) == 2
        await reconciler.client.aclose()

    async def test_retries_then_gives_up(self, settings, manifest_file):
        registry = Registry((503, {"detail": "maintenance"}))
        reconciler = make_reconciler(settings, registry)

        result = await reconciler.reconcile()

        assert result.success is False
        assert "maintenance" in result.error
        assert len(registry.requests) == 3
        assert reconciler.last_hash is None
        assert reconciler.last_result is result
        await reconciler.client.aclose()

    async def test_recovers_after_network_error(self, settings, manifest_file):
        registry = Registry(httpx.ConnectError("refused"), (200, sync_response()))
        reconciler = make_reconciler(settings, registry)

        result = await reconciler.reconcile()

        assert result.success is True
        assert len(registry.requests) == 2
        assert reconciler.last_hash is not None
        await reconciler.client.aclose()

    async def test_removed_functions_are_reported(self, settings, manifest_file):
        registry = Registry((200, sync_response(created=0, removed=["boards-archive"])))
        reconciler = make_reconciler(settings, registry)

        result = await reconciler.reconcile()

        assert result.success is True
        assert [f.key for f in result.removed_functions] == ["boards-archive"]
        await reconciler.client.aclose()

    async def test_missing_manifest_is_not_retried(self, settings):
        registry = Registry((200, sync_response()))
        reconciler = make_reconciler(settings, registry)

        result = await reconciler.reconcile()

        assert result.success is False
        assert "not found" in result.error
        assert registry.requests == []
        await reconciler.client.aclose()

    @pytest.mark.parametrize("content", [
        "{not json",
        json.dumps({"functions": []}),
        json.dumps({"system": {"id": "nup-kan"}, "functions": {}}),
    ])
    async def test_malformed_manifest(self, settings, manifest_file, content):
        manifest_file.write_text(content)
        registry = Registry((200, sync_response()))
        reconciler = make_reconciler(settings, registry)

        result = await reconciler.reconcile()

        assert result.success is False
        assert registry.requests == []
        await reconciler.client.aclose()

    async def test_disabled_without_token(self, settings, manifest_file):
        registry = Registry((200, sync_response()))
        reconciler = make_reconciler(settings, registry, sync_token=None)

        assert reconciler.enabled is False
        assert await reconciler.start() is None
        result = await reconciler.reconcile()
        assert result.error == SYNC_DISABLED
        assert registry.requests == []
        await reconciler.client.aclose()


class TestLifecycle:
    async def test_start_schedules_and_stop_cancels(self, settings, manifest_file):
        registry = Registry((200, sync_response()))
        reconciler = make_reconciler(settings, registry, interval_seconds=3600)

        result = await reconciler.start()

        assert result.success is True
        assert reconciler.running is True
        await reconciler.stop()
        assert reconciler.running is False
        await reconciler.client.aclose()

    async def test_no_periodic_task_without_auto_sync(self, settings, manifest_file):
        registry = Registry((200, sync_response()))
        reconciler = make_reconciler(settings, registry, auto_sync=False)

        await reconciler.start()

        assert reconciler.running is False
        await reconciler.client.aclose()

    async def test_connectivity(self, settings):
        reconciler = make_reconciler(settings, Registry((200, {})))
        assert await reconciler.check_connectivity() is True
        await reconciler.client.aclose()

    async def test_connectivity_when_unreachable(self, settings):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        reconciler = make_reconciler(settings, refuse)
        assert await reconciler.check_connectivity() is False
        await reconciler.client.aclose()


class TestAgainstRegistry:
    @pytest.fixture
    def full_manifest(self, settings):
        shutil.copyfile(MANIFEST_PATH, settings.permissions_file)

    async def test_end_to_end(self, app, settings, full_manifest, admin, token_for, store):
        client = RegistryClient(settings.identity_url, settings.system_id, transport=httpx.ASGITransport(app=app))
        reconciler = SyncReconciler.from_settings(client, settings)
        reconciler.sync_token = token_for(admin)

        first = await reconciler.reconcile()
        assert first.success is True
        assert first.summary.created == 64
        assert len(store.rows("functions")) == 64

        second = await reconciler.reconcile()
        assert second.skipped is True
        assert second.summary.total == 64
        assert second.summary.unchanged == 64

        forced = await reconciler.force_sync()
        assert forced.summary.unchanged == 64
        await client.aclose()

    async def test_non_admin_token_fails(self, app, settings, full_manifest, store, token_for):
        client = RegistryClient(settings.identity_url, settings.system_id, transport=httpx.ASGITransport(app=app))
        reconciler = SyncReconciler.from_settings(client, settings)
        reconciler.sync_token = token_for(make_user(store, "plain@example.com"))

        result = await reconciler.reconcile()

        assert result.success is False
        assert "403" in result.error
        assert store.rows("functions") == []
        await client.aclose()


class TestSyncScript:
    async def test_run_sync_forces(self, settings, manifest_file):
        registry = Registry((200, sync_response()))
        client = RegistryClient(settings.identity_url, settings.system_id, transport=httpx.MockTransport(registry))

        result = await run_sync(settings, client=client)

        assert result.success is True
        assert report(result) == 0
        assert len(registry.requests) == 1

    def test_report_failure(self):
        assert report(SyncResult(success=False, error="boom")) == 1
