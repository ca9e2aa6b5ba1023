"""Rewards API, 8 endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from gamelink.database import get_session
from gamelink.db.models import RewardClaim
from gamelink.dependencies import get_redis_dep
from gamelink.rewards.schemas import (
    ClaimRequest,
    ClaimResponse,
    GameRewardResponse,
    RewardAttachRequest,
    RewardCreateRequest,
    RewardResponse,
    RewardUpdateRequest,
)
from gamelink.rewards.service import (
    allocate,
    attach_reward,
    create_reward,
    detach_reward,
    list_game_rewards,
    list_rewards,
    list_user_claims,
    update_reward,
)
from gamelink.storage import run_unit_of_work

router = APIRouter(prefix="/api/v1", tags=["Rewards"])


def _claim_response(claim: RewardClaim, created: bool) -> ClaimResponse:
    return ClaimResponse(
        claim_id=claim.id,
        user_id=claim.user_id,
        game_id=claim.game_id,
        period=claim.period,
        period_key=claim.period_key,
        rank=claim.rank,
        claimed_at=claim.claimed_at,
        created=created,
        reward=RewardResponse.model_validate(claim.reward),
    )


@router.post("/rewards", response_model=RewardResponse, status_code=status.HTTP_201_CREATED)
async def create_reward_endpoint(body: RewardCreateRequest, db: AsyncSession = Depends(get_session)):
    async def _op():
        reward = await create_reward(db, **body.model_dump())
        await db.commit()
        return reward

    return await run_unit_of_work(db, _op, name="create_reward")


@router.get("/rewards", response_model=list[RewardResponse])
async def list_rewards_endpoint(
    active: bool = Query(False, description="Only active rewards"),
    db: AsyncSession = Depends(get_session),
):
    return await list_rewards(db, active_only=active)


@router.patch("/rewards/{reward_id}", response_model=RewardResponse)
async def update_reward_endpoint(
    reward_id: int,
    body: RewardUpdateRequest,
    db: AsyncSession = Depends(get_session),
):
    async def _op():
        reward = await update_reward(db, reward_id, **body.model_dump(exclude_none=True))
        await db.commit()
        return reward

    return await run_unit_of_work(db, _op, name="update_reward")


@router.post("/rewards/{reward_id}/games", response_model=GameRewardResponse, status_code=status.HTTP_201_CREATED)
async def attach_reward_endpoint(
    reward_id: int,
    body: RewardAttachRequest,
    db: AsyncSession = Depends(get_session),
):
    """Offer a reward on a game's leaderboard for one period. Idempotent."""

    async def _op():
        link = await attach_reward(db, reward_id, body.game_id, body.period)
        await db.commit()
        return link

    return await run_unit_of_work(db, _op, name="attach_reward")


@router.delete("/rewards/{reward_id}/games/{game_id}", status_code=status.HTTP_204_NO_CONTENT)
async def detach_reward_endpoint(
    reward_id: int,
    game_id: int,
    period: str | None = Query(None, description="Only this period; all periods when omitted"),
    db: AsyncSession = Depends(get_session),
) -> None:
    async def _op():
        removed = await detach_reward(db, reward_id, game_id, period)
        await db.commit()
        return removed

    await run_unit_of_work(db, _op, name="detach_reward")


@router.get("/games/{game_id}/rewards", response_model=list[GameRewardResponse])
async def game_rewards_endpoint(
    game_id: int,
    period: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
):
    return await list_game_rewards(db, game_id, period)


@router.post("/rewards/claim", response_model=ClaimResponse)
async def claim_reward_endpoint(
    body: ClaimRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """
    Claim the reward earned by the user's rank. Idempotent per window.

    404 when the rank earns nothing or the reward is out of stock.
    """
    outcome = await run_unit_of_work(
        db,
        lambda: allocate(db, redis, body.user_id, body.game_id, body.period, body.period_key),
        name="claim_reward",
    )
    return _claim_response(outcome.claim, outcome.created)


@router.get("/users/{user_id}/claims", response_model=list[ClaimResponse])
async def user_claims_endpoint(user_id: str, db: AsyncSession = Depends(get_session)):
    claims = await list_user_claims(db, user_id)
    return [_claim_response(claim, created=False) for claim in claims]
