"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from harambee.admin.router import router as admin_router
from harambee.auth.router import router as auth_router
from harambee.clubs.router import router as clubs_router
from harambee.communities.router import router as communities_router
from harambee.config import get_settings
from harambee.database import close_db, init_db
from harambee.health.router import router as health_router
from harambee.middleware import setup_middleware
from harambee.planning.router import router as planning_router
from harambee.redis_client import close_redis, init_redis
from harambee.tasks.router import router as tasks_router
from harambee.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    logger.info("app_started", environment=settings.environment, version=settings.app_version)

    yield

    await close_db()
    await close_redis()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Harambee Hub API",
        description="Backend API for Harambee Hub: clubs, communities, tasks and goal planning",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(clubs_router)
    app.include_router(communities_router)
    app.include_router(tasks_router)
    app.include_router(planning_router)
    app.include_router(admin_router)

    return app


app = create_app()
