"""Identity mapping between the partner catalog and the local platform.

Rules:
- One external id maps to at most one internal id and vice versa.
- Links are their own rows. A row may be half-linked (internal side NULL)
  because catalog sync and operator configuration happen out of order.
- Linking is a conditional UPDATE (only when the internal side is NULL)
  backed by a UNIQUE constraint on the internal column, so two concurrent
  link attempts for the same id cannot both win.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gamelink.db.models import ExternalGame, ExternalUser, GameLink, InternalGame, UserLink
from gamelink.errors import AlreadyLinked, MappingNotFound, NotFoundError, ValidationError
from gamelink.locks import link_locks

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Catalog sync (external side)
# ---------------------------------------------------------------------------


async def get_external_game(db: AsyncSession, external_id: str) -> ExternalGame | None:
    """Fetch an external game by partner id."""
    result = await db.execute(select(ExternalGame).where(ExternalGame.external_id == external_id))
    return result.scalar_one_or_none()


async def get_external_user(db: AsyncSession, external_user_id: str) -> ExternalUser | None:
    """Fetch an external user by partner id."""
    result = await db.execute(
        select(ExternalUser).where(ExternalUser.external_user_id == external_user_id)
    )
    return result.scalar_one_or_none()


async def sync_external_game(
    db: AsyncSession,
    external_id: str,
    name: str,
    description: str | None = None,
    is_active: bool = True,
) -> tuple[ExternalGame, bool]:
    """Import or refresh a catalog game and make sure its link row exists.

    Returns (game, created). Never touches the internal side of the link.
    """
    if not external_id.strip():
        raise ValidationError("external_id must not be empty")

    now = datetime.now(timezone.utc)
    game = await get_external_game(db, external_id)
    created = game is None
    if game is None:
        game = ExternalGame(
            external_id=external_id,
            name=name,
            description=description,
            is_active=is_active,
            created_at=now,
        )
        db.add(game)
        db.add(GameLink(external_id=external_id, internal_id=None))
    else:
        game.name = name
        game.description = description
        game.is_active = is_active
        game.updated_at = now
    await db.flush()
    return game, created


async def set_external_game_active(db: AsyncSession, external_id: str, is_active: bool) -> ExternalGame:
    """Toggle the only mutable attribute of an external game."""
    game = await get_external_game(db, external_id)
    if game is None:
        raise NotFoundError(f"External game {external_id} not found")
    game.is_active = is_active
    game.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return game


async def list_external_games(db: AsyncSession, active_only: bool = False) -> list[tuple[ExternalGame, int | None]]:
    """All catalog games with their linked internal id (or None)."""
    query = (
        select(ExternalGame, GameLink.internal_id)
        .outerjoin(GameLink, GameLink.external_id == ExternalGame.external_id)
        .order_by(ExternalGame.name)
    )
    if active_only:
        query = query.where(ExternalGame.is_active.is_(True))
    result = await db.execute(query)
    return [(row[0], row[1]) for row in result.all()]


async def sync_external_user(
    db: AsyncSession,
    external_user_id: str,
    username: str,
    email: str | None = None,
    avatar_url: str | None = None,
    is_active: bool = True,
) -> tuple[ExternalUser, bool]:
    """Import or refresh a catalog user and make sure its link row exists."""
    if not external_user_id.strip():
        raise ValidationError("external_user_id must not be empty")

    now = datetime.now(timezone.utc)
    user = await get_external_user(db, external_user_id)
    created = user is None
    if user is None:
        user = ExternalUser(
            external_user_id=external_user_id,
            username=username,
            email=email,
            avatar_url=avatar_url,
            is_active=is_active,
            created_at=now,
        )
        db.add(user)
        db.add(UserLink(external_user_id=external_user_id, internal_user_id=None))
    else:
        user.username = username
        user.email = email
        user.avatar_url = avatar_url
        user.is_active = is_active
        user.updated_at = now
    await db.flush()
    return user, created


async def list_external_users(db: AsyncSession) -> list[tuple[ExternalUser, int | None]]:
    """All catalog users with their linked internal id (or None)."""
    result = await db.execute(
        select(ExternalUser, UserLink.internal_user_id)
        .outerjoin(UserLink, UserLink.external_user_id == ExternalUser.external_user_id)
        .order_by(ExternalUser.username)
    )
    return [(row[0], row[1]) for row in result.all()]


# ---------------------------------------------------------------------------
# Game links
# ---------------------------------------------------------------------------


async def resolve_internal_game(db: AsyncSession, external_id: str) -> int | None:
    """Internal game id linked to ``external_id``, or None."""
    result = await db.execute(select(GameLink.internal_id).where(GameLink.external_id == external_id))
    return result.scalar_one_or_none()


async def resolve_external_game(db: AsyncSession, internal_id: int) -> str | None:
    """External game id linked to ``internal_id``, or None."""
    result = await db.execute(select(GameLink.external_id).where(GameLink.internal_id == internal_id))
    return result.scalar_one_or_none()


async def link_game(db: AsyncSession, external_id: str, internal_id: int) -> GameLink:
    """Link an external game to an internal game.

    Raises NotFoundError if either game is unknown, AlreadyLinked if either
    side already has a counterpart. Commits on success.
    """
    async with link_locks.hold(f"game:{external_id}"):
        if await get_external_game(db, external_id) is None:
            raise NotFoundError(f"External game {external_id} not found")
        internal = await db.execute(select(InternalGame.id).where(InternalGame.id == internal_id))
        if internal.scalar_one_or_none() is None:
            raise NotFoundError(f"Internal game {internal_id} not found")

        now = datetime.now(timezone.utc)
        try:
            result = await db.execute(
                update(GameLink)
                .where(GameLink.external_id == external_id, GameLink.internal_id.is_(None))
                .values(internal_id=internal_id, linked_at=now)
            )
            if result.rowcount == 0:
                existing = await db.get(GameLink, external_id, populate_existing=True)
                if existing is not None:
                    raise AlreadyLinked(
                        f"External game {external_id} is already linked to {existing.internal_id}",
                    )
                db.add(GameLink(external_id=external_id, internal_id=internal_id, linked_at=now))
            await db.flush()
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise AlreadyLinked(
                f"External game {external_id} or internal game {internal_id} is already linked",
            ) from None

    logger.info("Linked external game %s to internal game %s", external_id, internal_id)
    link = await db.get(GameLink, external_id, populate_existing=True)
    if link is None:
        raise MappingNotFound(f"No mapping for external game {external_id}")
    return link


async def unlink_game(db: AsyncSession, external_id: str) -> GameLink:
    """Clear the internal side of a game link. Commits on success."""
    async with link_locks.hold(f"game:{external_id}"):
        link = await db.get(GameLink, external_id, populate_existing=True)
        if link is None:
            raise MappingNotFound(f"No mapping for external game {external_id}")
        previous = link.internal_id
        link.internal_id = None
        link.linked_at = None
        await db.commit()

    logger.info("Unlinked external game %s (was %s)", external_id, previous)
    return link


async def available_external_games(db: AsyncSession) -> list[ExternalGame]:
    """External games with no internal counterpart."""
    result = await db.execute(
        select(ExternalGame)
        .outerjoin(GameLink, GameLink.external_id == ExternalGame.external_id)
        .where(GameLink.internal_id.is_(None))
        .order_by(ExternalGame.name)
    )
    return list(result.scalars())


async def available_internal_games(db: AsyncSession) -> list[InternalGame]:
    """Internal games not referenced by any link."""
    linked = select(GameLink.internal_id).where(GameLink.internal_id.is_not(None))
    result = await db.execute(
        select(InternalGame).where(InternalGame.id.not_in(linked)).order_by(InternalGame.name)
    )
    return list(result.scalars())


# ---------------------------------------------------------------------------
# User links
# ---------------------------------------------------------------------------


async def resolve_internal_user(db: AsyncSession, external_user_id: str) -> int | None:
    """Internal user id linked to ``external_user_id``, or None."""
    result = await db.execute(
        select(UserLink.internal_user_id).where(UserLink.external_user_id == external_user_id)
    )
    return result.scalar_one_or_none()


async def resolve_external_user(db: AsyncSession, internal_user_id: int) -> str | None:
    """External user id linked to ``internal_user_id``, or None."""
    result = await db.execute(
        select(UserLink.external_user_id).where(UserLink.internal_user_id == internal_user_id)
    )
    return result.scalar_one_or_none()


async def link_user(db: AsyncSession, external_user_id: str, internal_user_id: int) -> UserLink:
    """Link an external user to an internal user id. Same rules as link_game."""
    async with link_locks.hold(f"user:{external_user_id}"):
        if await get_external_user(db, external_user_id) is None:
            raise NotFoundError(f"External user {external_user_id} not found")

        now = datetime.now(timezone.utc)
        try:
            result = await db.execute(
                update(UserLink)
                .where(UserLink.external_user_id == external_user_id, UserLink.internal_user_id.is_(None))
                .values(internal_user_id=internal_user_id, linked_at=now)
            )
            if result.rowcount == 0:
                existing = await db.get(UserLink, external_user_id, populate_existing=True)
                if existing is not None:
                    raise AlreadyLinked(
                        f"External user {external_user_id} is already linked to {existing.internal_user_id}",
                    )
                db.add(UserLink(external_user_id=external_user_id, internal_user_id=internal_user_id, linked_at=now))
            await db.flush()
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise AlreadyLinked(
                f"External user {external_user_id} or internal user {internal_user_id} is already linked",
            ) from None

    logger.info("Linked external user %s to internal user %s", external_user_id, internal_user_id)
    link = await db.get(UserLink, external_user_id, populate_existing=True)
    if link is None:
        raise MappingNotFound(f"No mapping for external user {external_user_id}")
    return link


async def unlink_user(db: AsyncSession, external_user_id: str) -> UserLink:
    """Clear the internal side of a user link. Commits on success."""
    async with link_locks.hold(f"user:{external_user_id}"):
        link = await db.get(UserLink, external_user_id, populate_existing=True)
        if link is None:
            raise MappingNotFound(f"No mapping for external user {external_user_id}")
        previous = link.internal_user_id
        link.internal_user_id = None
        link.linked_at = None
        await db.commit()

    logger.info("Unlinked external user %s (was %s)", external_user_id, previous)
    return link


async def available_external_users(db: AsyncSession) -> list[ExternalUser]:
    """External users with no internal counterpart."""
    result = await db.execute(
        select(ExternalUser)
        .outerjoin(UserLink, UserLink.external_user_id == ExternalUser.external_user_id)
        .where(UserLink.internal_user_id.is_(None))
        .order_by(ExternalUser.username)
    )
    return list(result.scalars())
