"""
Pytest configuration and fixtures.
"""
import pytest
from fastapi.testclient import TestClient

from accesshub.cache import CacheManager
from accesshub.config import Settings
from accesshub.core.rate_limit import limiter
from accesshub.main import create_app
from accesshub.modules.auth.tokens import create_access_token

from tests.factories import JWT_SECRET, make_user
from tests.fakes import FakeSupabase



@pytest.fixture
def settings(tmp_path):
    """Settings isolated from any local .env"""
    return Settings(
        _env_file=None,
        supabase_url="http://supabase.test",
        supabase_key="test-key",
        jwt_secret=JWT_SECRET,
        environment="test",
        redis_url=None,
        identity_url="http://registry.test",
        identity_sync_token="sync-token",
        sync_retry_attempts=3,
        sync_retry_delay_seconds=0,
        permissions_file=str(tmp_path / "permissions.json"),
        system_id="nup-kan",
    )


@pytest.fixture
def store():
    return FakeSupabase()


@pytest.fixture
def cache():
    return CacheManager()


@pytest.fixture
def app(settings, store, cache):
    limiter.reset()
    return create_app(settings=settings, supabase=store, cache=cache)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def token_for():
    """Return a function minting an access token for a user row."""
    def _token_for(user):
        return create_access_token(user, JWT_SECRET)
    return _token_for


@pytest.fixture
def headers_for(token_for):
    def _headers_for(user):
        return {"Authorization": f"Bearer {token_for(user)}"}
    return _headers_for


@pytest.fixture
def admin(store):
    return make_user(store, "admin@example.com", name="Admin", is_super_user=True)


@pytest.fixture
def admin_headers(admin, headers_for):
    return headers_for(admin)
