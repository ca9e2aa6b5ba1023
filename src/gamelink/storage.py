"""Storage helpers: dialect-aware upserts, bounded calls and transient retry.

Every unit of work in a route goes through ``run_unit_of_work`` so storage
timeouts surface as ``TransientStorageError`` and are retried with backoff
after a rollback. Domain errors are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gamelink.config import get_settings
from gamelink.errors import TransientStorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def insert_for(db: AsyncSession, table: Table | Any) -> Any:  # noqa: ANN401
    """Return an INSERT supporting ON CONFLICT for the session's dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    msg = f"Unsupported dialect for upserts: {dialect}"
    raise RuntimeError(msg)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, PoolTimeoutError, asyncio.TimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


async def run_unit_of_work(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    name: str = "operation",
) -> T:
    """Run ``operation`` with a bounded timeout, retrying transient failures.

    The operation must own its transaction (commit inside). On a transient
    failure the session is rolled back before the next attempt.
    """
    settings = get_settings()

    async def _attempt() -> T:
        try:
            return await asyncio.wait_for(operation(), timeout=settings.storage_timeout_seconds)
        except Exception as exc:
            if not _is_transient(exc):
                raise
            await db.rollback()
            logger.warning("Transient storage failure in %s: %s", name, exc)
            raise TransientStorageError(f"Storage unavailable during {name}") from exc

    retrying = AsyncRetrying(
        stop=stop_after_attempt(settings.storage_retry_attempts),
        wait=wait_exponential(multiplier=0.1, max=settings.storage_retry_max_wait_seconds),
        retry=retry_if_exception_type(TransientStorageError),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await _attempt()
    raise AssertionError("unreachable")  # pragma: no cover
