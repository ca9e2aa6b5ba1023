"""Session expiry arq worker.

Open sessions idle longer than session_ttl_minutes are already expired
lazily on access; this sweep keeps the table honest for sessions nobody
touches again. Runs every 5 minutes.
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from gamelink.config import get_settings
from gamelink.database import close_db, get_session_factory, init_db
from gamelink.sessions.service import expire_stale_sessions

logger = logging.getLogger(__name__)


async def sweep_expired_sessions(ctx: dict) -> int:  # type: ignore[type-arg]
    """Expire every stale open session. Returns the number expired."""
    async with get_session_factory()() as db:
        count = await expire_stale_sessions(db)
    if count > 0:
        logger.info("Expired %d stale sessions", count)
    return count


async def session_worker_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    logger.info("Session worker started")


async def session_worker_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_db()
    logger.info("Session worker shut down")


class SessionWorkerSettings:
    """arq worker settings for session housekeeping."""

    functions = [sweep_expired_sessions]
    cron_jobs = [cron(sweep_expired_sessions, minute=set(range(0, 60, 5)), run_at_startup=True)]
    on_startup = session_worker_startup
    on_shutdown = session_worker_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 2
    job_timeout = 300
