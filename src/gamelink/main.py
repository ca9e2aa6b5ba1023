"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from gamelink.config import get_settings
from gamelink.database import close_db, get_session_factory, init_db
from gamelink.games.router import router as games_router
from gamelink.health.router import router as health_router
from gamelink.leaderboard.router import router as leaderboard_router
from gamelink.mapping.router import router as mapping_router
from gamelink.middleware import setup_middleware
from gamelink.redis_client import close_redis, init_redis
from gamelink.rewards.router import router as rewards_router
from gamelink.sessions.router import router as sessions_router
from gamelink.sessions.seed import seed_questions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed the question bank (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_questions(db)
    except SQLAlchemyError:
        logger.warning("Question seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="GameLink API",
        description="Partner catalog identity mapping and quiz scoring engine",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(mapping_router)
    app.include_router(games_router)
    app.include_router(sessions_router)
    app.include_router(leaderboard_router)
    app.include_router(rewards_router)

    return app


app = create_app()
