from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase (registry store)
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Bypasses RLS; used by seed scripts

    # Credentials
    jwt_secret: str = "accesshub-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 60
    refresh_token_expiration_days: int = 7
    enable_registration: bool = True

    # Shared cache; in-process cache when unset or unreachable
    redis_url: Optional[str] = None
    cache_max_entries: int = 1000

    # Client system integration
    identity_url: str = "http://localhost:3001"
    identity_sync_token: Optional[str] = None
    identity_timeout_seconds: float = 10.0
    auto_sync_permissions: bool = True
    sync_interval_minutes: int = 5
    sync_retry_attempts: int = 3
    sync_retry_delay_seconds: float = 5.0
    permissions_file: str = "permissions.json"
    system_id: str = "nup-kan"

    # App
    app_name: str = "accesshub"
    api_prefix: str = "/api"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:5000,http://localhost:5001,http://127.0.0.1:5000"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"
    login_rate_limit: str = "20/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def sync_enabled(self) -> bool:
        return bool(self.identity_sync_token)

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
