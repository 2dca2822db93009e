import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from supabase import Client

from accesshub.cache import CacheManager
from accesshub.config import Settings, get_settings
from accesshub.core.rate_limit import limiter
from accesshub.database.supabase_client import create_supabase_client
from accesshub.modules.auth import routes as auth_routes
from accesshub.modules.permissions import routes as permissions_routes
from accesshub.modules.profiles import routes as profiles_routes
from accesshub.modules.systems import routes as systems_routes
from accesshub.modules.users import routes as users_routes

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )


def create_app(
    settings: Optional[Settings] = None,
    supabase: Optional[Client] = None,
    cache: Optional[CacheManager] = None,
) -> FastAPI:
    """
    Build the identity registry application.

    The store client and cache can be injected; otherwise they are built from
    settings. The cache starts in-process and moves to Redis on startup when
    redis_url is configured and reachable.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        redirect_slashes=False,
    )
    app.state.settings = settings
    app.state.supabase = supabase if supabase is not None else create_supabase_client(settings)
    app.state.cache = cache if cache is not None else CacheManager(max_entries=settings.cache_max_entries)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        if settings.is_production:
            return JSONResponse(status_code=500, content={"detail": "Internal server error"})
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include module routes
    prefix = settings.api_prefix
    app.include_router(auth_routes.router, prefix=prefix)
    app.include_router(auth_routes.validation_router, prefix=prefix)
    app.include_router(users_routes.router, prefix=prefix)
    app.include_router(systems_routes.router, prefix=prefix)
    app.include_router(profiles_routes.router, prefix=prefix)
    app.include_router(profiles_routes.user_router, prefix=prefix)
    app.include_router(permissions_routes.router, prefix=prefix)

    @app.on_event("startup")
    async def startup_event():
        logger.info("Application startup")
        if cache is None:
            await app.state.cache.connect(settings.redis_url)

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Application shutdown")
        await app.state.cache.close()

    @app.get("/")
    async def root():
        return {"message": f"Welcome to {settings.app_name}", "status": "healthy"}

    @app.get("/health")
    @limiter.exempt
    async def health():
        return {"status": "healthy"}

    @app.get("/ready")
    @limiter.exempt
    async def ready():
        """Readiness check: reports the cache backend in use."""
        return {"status": "ready", "cache": app.state.cache.backend_name}

    return app
