"""Shared test fixtures.

Each test gets a fresh file-backed SQLite database built from the ORM
metadata and seeded with the bundled question bank. Redis is not
initialized: rate limiting passes requests through and events are not
published unless a test passes its own client.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gamelink.database import close_db, get_engine, get_session_factory, init_db
from gamelink.db import models  # noqa: F401
from gamelink.db.base import Base
from gamelink.games.service import create_game
from gamelink.main import create_app
from gamelink.mapping.service import link_game, sync_external_game, sync_external_user
from gamelink.sessions.seed import seed_questions


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[str, None]:
    """Create an empty schema in a temporary SQLite file."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'gamelink.db'}"
    await init_db(url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as db:
        await seed_questions(db)
    yield url
    await close_db()


@pytest_asyncio.fixture
async def session_factory(database: str) -> async_sessionmaker[AsyncSession]:
    """Session factory, for tests that need several concurrent sessions."""
    return get_session_factory()


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for service calls and assertions."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(database: str) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app (lifespan not run; DB already initialized)."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def make_player(db: AsyncSession, external_user_id: str = "u-1", username: str | None = None) -> str:
    """Sync an external user into the catalog and commit."""
    await sync_external_user(db, external_user_id, username or f"player-{external_user_id}")
    await db.commit()
    return external_user_id


async def make_linked_game(
    db: AsyncSession,
    external_id: str = "g-1",
    name: str = "Book Quiz",
    **fields: Any,  # noqa: ANN401
) -> tuple[str, int]:
    """Create an external game, an internal game and the link between them."""
    fields.setdefault("question_count", 3)
    fields.setdefault("timer_duration", 10)
    fields.setdefault("base_points", 10)
    await sync_external_game(db, external_id, name)
    game = await create_game(db, name, **fields)
    await db.commit()
    await link_game(db, external_id, game.id)
    return external_id, game.id


@pytest_asyncio.fixture
async def player(db_session: AsyncSession) -> str:
    return await make_player(db_session)


@pytest_asyncio.fixture
async def linked_game(db_session: AsyncSession) -> tuple[str, int]:
    """(external_id, internal_id) of a 3-question books game, 10s timer, 10 base points."""
    return await make_linked_game(db_session)
