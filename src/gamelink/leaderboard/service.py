"""Leaderboard aggregation: per (user, game, period, window) point totals.

Totals are maintained incrementally with an atomic upsert
(points = points + delta) and never recomputed on read. Ranking is
points DESC, then entry creation ASC, then id ASC, so ties are broken by
who reached the board first and ranks are stable between reads.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from gamelink.config import get_settings
from gamelink.db.models import ExternalUser, InternalGame, LeaderboardEntry, RewardClaim
from gamelink.enums import Period
from gamelink.errors import InvariantViolation, NotFoundError
from gamelink.leaderboard.periods import parse_period, period_key, validate_period_key
from gamelink.storage import insert_for

logger = logging.getLogger(__name__)


def enabled_periods(game: InternalGame) -> list[Period]:
    """Periods a game aggregates into. All-time is always on."""
    periods = [Period.ALL_TIME]
    if game.monthly_leaderboard:
        periods.append(Period.MONTHLY)
    if game.weekly_leaderboard:
        periods.append(Period.WEEKLY)
    return periods


async def record_points(
    db: AsyncSession,
    user_id: str,
    game_id: int | None,
    points: int,
    at: datetime | None = None,
) -> list[tuple[Period, str]]:
    """
    Add ``points`` to every enabled window of ``game_id`` containing ``at``.

    Runs inside the caller's transaction (flush only). Returns the windows
    that were touched; an unlinked game (None) touches nothing.

    Raises:
        InvariantViolation: If points is negative.
    """
    if game_id is None:
        logger.info("leaderboard_skipped_unlinked user_id=%s points=%d", user_id, points)
        return []
    if points < 0:
        raise InvariantViolation(f"Leaderboard delta must be non-negative, got {points}")

    game = await db.get(InternalGame, game_id)
    if game is None:
        logger.warning("leaderboard_skipped_missing_game game_id=%s user_id=%s", game_id, user_id)
        return []

    if at is None:
        at = datetime.now(timezone.utc)
    now = datetime.now(timezone.utc)
    table = LeaderboardEntry.__table__

    touched: list[tuple[Period, str]] = []
    for period in enabled_periods(game):
        key = period_key(period, at)
        stmt = insert_for(db, LeaderboardEntry).values(
            user_id=user_id,
            game_id=game_id,
            period=period.value,
            period_key=key,
            points=points,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "game_id", "period", "period_key"],
            set_={
                "points": table.c.points + stmt.excluded.points,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(stmt)
        touched.append((period, key))

    logger.debug("Credited %d points to %s on game %s (%d windows)", points, user_id, game_id, len(touched))
    return touched


def _resolve_window(period: Period | str, key: str | None) -> tuple[Period, str]:
    period = parse_period(period)
    if key is None:
        return period, period_key(period)
    return period, validate_period_key(period, key)


def _ranking_order():
    return (
        LeaderboardEntry.points.desc(),
        LeaderboardEntry.created_at.asc(),
        LeaderboardEntry.id.asc(),
    )


async def _claimed_rewards(
    db: AsyncSession,
    user_ids: list[str],
    game_id: int | None,
    period: Period,
    key: str,
) -> dict[str, list[dict]]:
    """Claims in a window for the given users, keyed by user id."""
    claimed: dict[str, list[dict]] = {user_id: [] for user_id in user_ids}
    if not user_ids:
        return claimed
    query = select(RewardClaim).where(
        RewardClaim.user_id.in_(user_ids),
        RewardClaim.period == period.value,
        RewardClaim.period_key == key,
    )
    if game_id is not None:
        query = query.where(RewardClaim.game_id == game_id)
    result = await db.execute(query.order_by(RewardClaim.claimed_at, RewardClaim.id))
    for claim in result.scalars().unique():
        claimed[claim.user_id].append(
            {
                "claim_id": claim.id,
                "reward_id": claim.reward_id,
                "game_id": claim.game_id,
                "name": claim.reward.name,
                "type": claim.reward.type,
                "value": claim.reward.value,
                "rank": claim.rank,
                "claimed_at": claim.claimed_at,
            }
        )
    return claimed


async def _game_standings(db: AsyncSession, game_id: int, period: Period, key: str, limit: int):
    window = (
        LeaderboardEntry.game_id == game_id,
        LeaderboardEntry.period == period.value,
        LeaderboardEntry.period_key == key,
    )
    result = await db.execute(
        select(LeaderboardEntry.user_id, LeaderboardEntry.points, ExternalUser.username, ExternalUser.avatar_url)
        .outerjoin(ExternalUser, ExternalUser.external_user_id == LeaderboardEntry.user_id)
        .where(*window)
        .order_by(*_ranking_order())
        .limit(limit)
    )
    total = (await db.execute(select(func.count()).select_from(LeaderboardEntry).where(*window))).scalar_one()
    return result.all(), total


async def _global_standings(db: AsyncSession, period: Period, key: str, limit: int):
    # One row per user, summed over every game that aggregates into the window.
    window = (LeaderboardEntry.period == period.value, LeaderboardEntry.period_key == key)
    points = func.sum(LeaderboardEntry.points).label("points")
    first_seen = func.min(LeaderboardEntry.created_at).label("first_seen")
    totals = (
        select(LeaderboardEntry.user_id.label("user_id"), points, first_seen)
        .where(*window)
        .group_by(LeaderboardEntry.user_id)
        .subquery()
    )
    result = await db.execute(
        select(totals.c.user_id, totals.c.points, ExternalUser.username, ExternalUser.avatar_url)
        .outerjoin(ExternalUser, ExternalUser.external_user_id == totals.c.user_id)
        .order_by(totals.c.points.desc(), totals.c.first_seen.asc(), totals.c.user_id.asc())
        .limit(limit)
    )
    total = (
        await db.execute(select(func.count(func.distinct(LeaderboardEntry.user_id))).where(*window))
    ).scalar_one()
    return result.all(), total


async def get_leaderboard(
    db: AsyncSession,
    game_id: int | None,
    period: Period | str,
    key: str | None = None,
    limit: int | None = None,
    with_rewards: bool = False,
) -> dict:
    """
    Top ``limit`` standings for a window, with usernames and avatars.

    With a ``game_id`` the board is that game's. Without one, a user's points
    are summed across games; ties go to the user whose earliest entry came
    first, then to the lower user id.

    ``with_rewards`` attaches each user's claims in the same window (and the
    same game, when one is given).
    """
    settings = get_settings()
    period, key = _resolve_window(period, key)
    if limit is None:
        limit = settings.leaderboard_default_limit
    limit = max(1, min(limit, settings.leaderboard_max_limit))

    if game_id is None:
        rows, total = await _global_standings(db, period, key, limit)
    else:
        if await db.get(InternalGame, game_id) is None:
            raise NotFoundError(f"Internal game {game_id} not found")
        rows, total = await _game_standings(db, game_id, period, key, limit)

    entries = [
        {
            "rank": idx + 1,
            "user_id": user_id,
            "username": username or user_id,
            "avatar_url": avatar_url,
            "points": int(points),
        }
        for idx, (user_id, points, username, avatar_url) in enumerate(rows)
    ]
    if with_rewards:
        claimed = await _claimed_rewards(db, [e["user_id"] for e in entries], game_id, period, key)
        for entry in entries:
            entry["rewards"] = claimed[entry["user_id"]]

    return {
        "game_id": game_id,
        "period": period.value,
        "period_key": key,
        "entries": entries,
        "total": total,
    }



async def get_user_rank(
    db: AsyncSession,
    user_id: str,
    game_id: int,
    period: Period | str,
    key: str | None = None,
) -> dict:
    """A user's rank in a game window. rank is 0 when the user has no entry."""
    period, key = _resolve_window(period, key)
    window = (
        LeaderboardEntry.game_id == game_id,
        LeaderboardEntry.period == period.value,
        LeaderboardEntry.period_key == key,
    )
    total = (await db.execute(select(func.count()).select_from(LeaderboardEntry).where(*window))).scalar_one()

    result = await db.execute(select(LeaderboardEntry).where(*window, LeaderboardEntry.user_id == user_id))
    entry = result.scalar_one_or_none()
    if entry is None:
        return {"period": period.value, "period_key": key, "rank": 0, "points": 0, "total": total}

    ahead = await db.execute(
        select(func.count())
        .select_from(LeaderboardEntry)
        .where(
            *window,
            or_(
                LeaderboardEntry.points > entry.points,
                and_(LeaderboardEntry.points == entry.points, LeaderboardEntry.created_at < entry.created_at),
                and_(
                    LeaderboardEntry.points == entry.points,
                    LeaderboardEntry.created_at == entry.created_at,
                    LeaderboardEntry.id < entry.id,
                ),
            ),
        )
    )
    return {
        "period": period.value,
        "period_key": key,
        "rank": ahead.scalar_one() + 1,
        "points": entry.points,
        "total": total,
    }
