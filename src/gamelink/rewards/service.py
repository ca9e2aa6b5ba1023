"""Reward definitions, game attachments and rank-based claims.

A claim is unique per (user, reward, period, window). Allocation is an
insert-if-absent on that key plus a conditional stock decrement in the
same transaction, so concurrent claims for the same key produce exactly
one row and every caller gets that row back.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gamelink.db.models import InternalGame, Reward, RewardClaim, RewardGame
from gamelink.enums import Period
from gamelink.errors import NoRewardAvailable, NotFoundError, ValidationError
from gamelink.events import CHANNEL_REWARD_CLAIMED, publish
from gamelink.leaderboard.periods import parse_period, period_key, validate_period_key
from gamelink.leaderboard.service import get_user_rank
from gamelink.locks import claim_locks
from gamelink.storage import insert_for

logger = logging.getLogger(__name__)


@dataclass
class ClaimOutcome:
    claim: RewardClaim
    created: bool


# ---------------------------------------------------------------------------
# Reward definitions
# ---------------------------------------------------------------------------


def _check_reward_fields(required_rank: int | None, available: int | None) -> None:
    if required_rank is not None and required_rank < 1:
        raise ValidationError("required_rank must be at least 1")
    if available is not None and available < 0:
        raise ValidationError("available must not be negative")


async def get_reward(db: AsyncSession, reward_id: int) -> Reward:
    reward = await db.get(Reward, reward_id)
    if reward is None:
        raise NotFoundError(f"Reward {reward_id} not found")
    return reward


async def create_reward(
    db: AsyncSession,
    name: str,
    type: str,  # noqa: A002
    value: str,
    required_rank: int,
    available: int,
    description: str = "",
    is_active: bool = True,
) -> Reward:
    """Create a reward definition. ``available`` is the initial stock."""
    if not name.strip():
        raise ValidationError("name must not be empty")
    _check_reward_fields(required_rank, available)

    reward = Reward(
        name=name,
        description=description or "",
        type=type,
        value=value,
        required_rank=required_rank,
        available=available,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
    )
    db.add(reward)
    await db.flush()
    logger.info("Created reward %s (%s) for rank <= %d", reward.id, name, required_rank)
    return reward


async def update_reward(
    db: AsyncSession,
    reward_id: int,
    name: str | None = None,
    description: str | None = None,
    type: str | None = None,  # noqa: A002
    value: str | None = None,
    required_rank: int | None = None,
    available: int | None = None,
    is_active: bool | None = None,
) -> Reward:
    """Partial update. Existing claims are never touched."""
    _check_reward_fields(required_rank, available)
    reward = await get_reward(db, reward_id)
    for field, new in (
        ("name", name),
        ("description", description),
        ("type", type),
        ("value", value),
        ("required_rank", required_rank),
        ("available", available),
        ("is_active", is_active),
    ):
        if new is not None:
            setattr(reward, field, new)
    await db.flush()
    return reward


async def list_rewards(db: AsyncSession, active_only: bool = False) -> list[Reward]:
    query = select(Reward).order_by(Reward.required_rank, Reward.id)
    if active_only:
        query = query.where(Reward.is_active.is_(True))
    result = await db.execute(query)
    return list(result.scalars())


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


async def attach_reward(db: AsyncSession, reward_id: int, game_id: int, period: Period | str) -> RewardGame:
    """Offer a reward on a game's leaderboard for one period. Idempotent."""
    period = parse_period(period)
    await get_reward(db, reward_id)
    if await db.get(InternalGame, game_id) is None:
        raise NotFoundError(f"Internal game {game_id} not found")

    stmt = insert_for(db, RewardGame).values(
        reward_id=reward_id,
        game_id=game_id,
        period=period.value,
        created_at=datetime.now(timezone.utc),
    )
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["reward_id", "game_id", "period"]))

    result = await db.execute(
        select(RewardGame).where(
            RewardGame.reward_id == reward_id,
            RewardGame.game_id == game_id,
            RewardGame.period == period.value,
        )
    )
    return result.scalar_one()


async def detach_reward(
    db: AsyncSession,
    reward_id: int,
    game_id: int,
    period: Period | str | None = None,
) -> int:
    """Remove a reward from a game (one period, or all). Returns rows removed."""
    stmt = delete(RewardGame).where(RewardGame.reward_id == reward_id, RewardGame.game_id == game_id)
    if period is not None:
        stmt = stmt.where(RewardGame.period == parse_period(period).value)
    result = await db.execute(stmt)
    if result.rowcount == 0:
        raise NotFoundError(f"Reward {reward_id} is not attached to game {game_id}")
    return result.rowcount


async def list_game_rewards(
    db: AsyncSession,
    game_id: int,
    period: Period | str | None = None,
) -> list[RewardGame]:
    query = (
        select(RewardGame)
        .join(Reward, Reward.id == RewardGame.reward_id)
        .where(RewardGame.game_id == game_id)
        .order_by(RewardGame.period, Reward.required_rank, Reward.id)
    )
    if period is not None:
        query = query.where(RewardGame.period == parse_period(period).value)
    result = await db.execute(query)
    return list(result.scalars().unique())


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------


async def _claim_for_window(
    db: AsyncSession, user_id: str, game_id: int, period: Period, key: str,
) -> RewardClaim | None:
    result = await db.execute(
        select(RewardClaim)
        .where(
            RewardClaim.user_id == user_id,
            RewardClaim.game_id == game_id,
            RewardClaim.period == period.value,
            RewardClaim.period_key == key,
        )
        .order_by(RewardClaim.claimed_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _best_fit(db: AsyncSession, game_id: int, period: Period, rank: int) -> Reward | None:
    """The active attached reward with the tightest required rank the user meets."""
    result = await db.execute(
        select(Reward)
        .join(RewardGame, RewardGame.reward_id == Reward.id)
        .where(
            RewardGame.game_id == game_id,
            RewardGame.period == period.value,
            Reward.is_active.is_(True),
            Reward.required_rank >= rank,
        )
        .order_by(Reward.required_rank, Reward.id)
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def allocate(
    db: AsyncSession,
    redis: object,
    user_id: str,
    game_id: int,
    period: Period | str,
    key: str | None = None,
) -> ClaimOutcome:
    """
    Claim the reward a user's rank earns in a game window.

    ``key`` selects a past window (default: the current one). A user who
    already claimed in the window gets that claim back unchanged.

    Raises:
        NoRewardAvailable: No rank, no attached reward covers the rank,
            or the best-fitting reward is out of stock.
    """
    period = parse_period(period)
    key = period_key(period) if key is None else validate_period_key(period, key)

    async with claim_locks.hold(f"{user_id}:{game_id}:{period.value}:{key}"):
        existing = await _claim_for_window(db, user_id, game_id, period, key)
        if existing is not None:
            return ClaimOutcome(claim=existing, created=False)

        standing = await get_user_rank(db, user_id, game_id, period, key)
        rank = standing["rank"]
        if rank == 0:
            raise NoRewardAvailable(f"User {user_id} has no rank on game {game_id} for {period.value} {key}")

        reward = await _best_fit(db, game_id, period, rank)
        if reward is None:
            raise NoRewardAvailable(f"No reward covers rank {rank} on game {game_id} for {period.value}")
        if reward.available <= 0:
            raise NoRewardAvailable(f"Reward {reward.id} is out of stock")
        reward_id = reward.id

        now = datetime.now(timezone.utc)
        stmt = insert_for(db, RewardClaim).values(
            id=str(uuid.uuid4()),
            user_id=user_id,
            reward_id=reward_id,
            game_id=game_id,
            period=period.value,
            period_key=key,
            rank=rank,
            claimed_at=now,
        )
        inserted = await db.execute(
            stmt.on_conflict_do_nothing(index_elements=["user_id", "reward_id", "period", "period_key"])
        )
        created = inserted.rowcount == 1

        if created:
            decremented = await db.execute(
                update(Reward)
                .where(Reward.id == reward_id, Reward.available > 0)
                .values(available=Reward.available - 1)
                .execution_options(synchronize_session=False)
            )
            if decremented.rowcount == 0:
                await db.rollback()
                raise NoRewardAvailable(f"Reward {reward_id} is out of stock")
        await db.commit()

        result = await db.execute(
            select(RewardClaim)
            .where(
                RewardClaim.user_id == user_id,
                RewardClaim.reward_id == reward_id,
                RewardClaim.period == period.value,
                RewardClaim.period_key == key,
            )
            .execution_options(populate_existing=True)
        )
        claim = result.scalar_one()

    if created:
        logger.info("Reward %s claimed by %s (rank %d, %s %s)", reward_id, user_id, rank, period.value, key)
        await publish(redis, CHANNEL_REWARD_CLAIMED, {
            "claim_id": claim.id,
            "user_id": user_id,
            "reward_id": reward_id,
            "game_id": game_id,
            "period": period.value,
            "period_key": key,
            "rank": rank,
        })
    return ClaimOutcome(claim=claim, created=created)


async def list_user_claims(db: AsyncSession, user_id: str) -> list[RewardClaim]:
    result = await db.execute(
        select(RewardClaim)
        .where(RewardClaim.user_id == user_id)
        .order_by(RewardClaim.claimed_at.desc(), RewardClaim.id)
    )
    return list(result.scalars().unique())
