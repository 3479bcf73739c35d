"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from gardennet.competition.router import router as competition_router
from gardennet.config import get_settings
from gardennet.database import close_db, init_db
from gardennet.health.router import router as health_router
from gardennet.middleware import setup_middleware
from gardennet.redis_client import close_redis, init_redis
from gardennet.social.router import router as social_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the database engine and optional Redis client for the app's lifetime."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    if not settings.operator_api_key:
        logger.warning("operator_endpoints_disabled", reason="GN_OPERATOR_API_KEY is not set")
    logger.info("garden_network_started", version=settings.app_version, environment=settings.environment)

    yield

    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    """Build the Garden Network API: health probes plus the network and challenge routers."""
    settings = get_settings()

    app = FastAPI(
        title="Garden Network API",
        description="Classroom network for garden towers: profiles, discovery, connections, challenges, leaderboard",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(social_router)
    app.include_router(competition_router)

    return app


app = create_app()
