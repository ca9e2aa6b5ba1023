"""Internal game configuration."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select

from gamelink.db.models import InternalGame
from gamelink.enums import CreditPolicy, GameType
from gamelink.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 3

_MUTABLE_FIELDS = (
    "name",
    "description",
    "game_type",
    "difficulty",
    "timer_duration",
    "question_count",
    "base_points",
    "weekly_leaderboard",
    "monthly_leaderboard",
    "credit_policy",
)


def _validate(fields: dict[str, Any]) -> dict[str, Any]:
    """Normalize enum fields and range-check numeric ones."""
    clean = dict(fields)
    if "name" in clean and not (clean["name"] or "").strip():
        raise ValidationError("name must not be empty")
    if "game_type" in clean:
        try:
            clean["game_type"] = GameType(clean["game_type"]).value
        except ValueError:
            raise ValidationError(f"Unknown game type: {clean['game_type']}") from None
    if "credit_policy" in clean:
        try:
            clean["credit_policy"] = CreditPolicy(clean["credit_policy"]).value
        except ValueError:
            raise ValidationError(f"Unknown credit policy: {clean['credit_policy']}") from None
    if "difficulty" in clean and not MIN_DIFFICULTY <= clean["difficulty"] <= MAX_DIFFICULTY:
        raise ValidationError(f"difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}")
    for positive in ("timer_duration", "question_count", "base_points"):
        if positive in clean and clean[positive] < 1:
            raise ValidationError(f"{positive} must be at least 1")
    return clean


async def get_game(db: AsyncSession, game_id: int) -> InternalGame:
    """Fetch an internal game or raise NotFoundError."""
    result = await db.execute(select(InternalGame).where(InternalGame.id == game_id))
    game = result.scalar_one_or_none()
    if game is None:
        raise NotFoundError(f"Internal game {game_id} not found")
    return game


async def list_games(db: AsyncSession, active_only: bool = False) -> list[InternalGame]:
    query = select(InternalGame).order_by(InternalGame.id)
    if active_only:
        query = query.where(InternalGame.is_active.is_(True))
    result = await db.execute(query)
    return list(result.scalars())


async def create_game(db: AsyncSession, name: str, **fields: Any) -> InternalGame:  # noqa: ANN401
    """
    Create an internal game.

    Unspecified fields take the column defaults (books, difficulty 1,
    30s timer, 10 questions, 10 base points, both periodic boards on,
    credit on completion).
    """
    unknown = set(fields) - set(_MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown game fields: {', '.join(sorted(unknown))}")
    clean = _validate({"name": name, **{k: v for k, v in fields.items() if v is not None}})

    game = InternalGame(created_at=datetime.now(timezone.utc), **clean)
    db.add(game)
    await db.flush()

    logger.info("game_created", game_id=game.id, name=game.name, game_type=game.game_type)
    return game


async def update_game(db: AsyncSession, game_id: int, **fields: Any) -> InternalGame:  # noqa: ANN401
    """Apply a partial update. None values are ignored."""
    unknown = set(fields) - set(_MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown game fields: {', '.join(sorted(unknown))}")
    clean = _validate({k: v for k, v in fields.items() if v is not None})

    game = await get_game(db, game_id)
    for key, value in clean.items():
        setattr(game, key, value)
    game.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return game


async def toggle_game(db: AsyncSession, game_id: int) -> InternalGame:
    """Flip is_active. Disabled games reject new sessions."""
    game = await get_game(db, game_id)
    game.is_active = not game.is_active
    game.updated_at = datetime.now(timezone.utc)
    await db.flush()

    logger.info("game_toggled", game_id=game.id, is_active=game.is_active)
    return game
