"""
MarketSync FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync import __version__
from marketsync.config import get_settings
from marketsync.core.logging_config import setup_logging
from marketsync.core.redis_client import close_redis, get_redis
from marketsync.core.sentry_config import init_sentry
from marketsync.middleware.logging_middleware import LoggingMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle management."""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} v{__version__} ({settings.app_env.value})")
    yield
    await close_redis()
    logger.info(f"Shutting down {settings.app_name}")


def create_app() -> FastAPI:
    """Application factory: creates and configures the FastAPI instance."""
    settings = get_settings()

    # 1. Configure structured logging (before anything else)
    setup_logging(
        app_env=settings.app_env,
        log_level=settings.log_level,
        log_format=settings.log_format,
    )

    # 2. Initialize Sentry (before app creation so ASGI integration hooks in)
    init_sentry(
        dsn=settings.sentry_dsn,
        app_env=settings.app_env,
        app_version=__version__,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        profiles_sample_rate=settings.sentry_profiles_sample_rate,
    )

    openapi_tags = [
        {
            "name": "Authentication",
            "description": "Connect, inspect and disconnect the tenant's eBay account.",
        },
        {
            "name": "Batch",
            "description": "Publish, update or end listings for a list of products.",
        },
        {
            "name": "Sync",
            "description": "Run the order poll or the outbound quantity reconcile on demand.",
        },
        {
            "name": "Webhooks",
            "description": "eBay endpoint verification and push notifications.",
        },
        {
            "name": "System",
            "description": "Health checks and operational endpoints.",
        },
    ]

    app = FastAPI(
        title=settings.app_name,
        description=(
            "MarketSync keeps a multi-tenant product catalog in sync with eBay: "
            "listing publication, order polling, quantity reconciliation and "
            "push notifications.\n\n"
            "**Authentication:** All endpoints except `/health` and the eBay "
            "callback/webhook routes require a JWT Bearer token carrying a `tenant_id`."
        ),
        version=__version__,
        lifespan=lifespan,
        openapi_tags=openapi_tags,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        redirect_slashes=False,
    )

    app.add_middleware(LoggingMiddleware)
    if settings.is_development:
        cors_origins = ["http://localhost:5173"]
    elif settings.cors_allowed_origins:
        cors_origins = [o.strip() for o in settings.cors_allowed_origins.split(",") if o.strip()]
    else:
        cors_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register API routers (triggers database module import)
    from marketsync.api.v1 import auth, batch, sync, webhooks
    from marketsync.db.database import get_db

    @app.get("/health", tags=["System"])
    async def health_check(
        db: AsyncSession = Depends(get_db),
        redis: Redis = Depends(get_redis),
    ):
        from marketsync.core.health import get_health_status

        return await get_health_status(
            settings=settings,
            app_version=__version__,
            db_session=db,
            redis_client=redis,
        )

    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(batch.router, prefix="/api/v1")
    app.include_router(sync.router, prefix="/api/v1")
    app.include_router(webhooks.router, prefix="/api/v1")

    # Register global exception handlers (after routers)
    from marketsync.middleware.exception_handler import register_exception_handlers

    register_exception_handlers(app)

    return app


app = create_app()
