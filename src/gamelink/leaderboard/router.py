"""Leaderboard API, 2 endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from gamelink.database import get_session
from gamelink.leaderboard.schemas import LeaderboardResponse, UserRankResponse
from gamelink.leaderboard.service import get_leaderboard, get_user_rank

router = APIRouter(prefix="/api/v1/leaderboard", tags=["Leaderboard"])


@router.get("", response_model=LeaderboardResponse)
async def leaderboard_endpoint(
    game_id: int | None = Query(None, alias="gameId", description="Omit for the board across all games"),
    period: str = Query("all_time", description="all_time, monthly or weekly"),
    period_key: str | None = Query(None, alias="periodKey", description="Window, e.g. 2026-10 or 2026-W42"),
    limit: int | None = Query(None, ge=1),
    with_rewards: bool = Query(False, alias="withRewards"),
    db: AsyncSession = Depends(get_session),
):
    """Standings for a window, best first. Defaults to the current window."""
    return await get_leaderboard(db, game_id, period, period_key, limit, with_rewards=with_rewards)


@router.get("/users/{user_id}", response_model=UserRankResponse)
async def user_rank_endpoint(
    user_id: str,
    game_id: int = Query(..., alias="gameId"),
    period: str = Query("all_time"),
    period_key: str | None = Query(None, alias="periodKey"),
    db: AsyncSession = Depends(get_session),
):
    """A user's rank in a game window. rank is 0 when unranked."""
    return await get_user_rank(db, user_id, game_id, period, period_key)
