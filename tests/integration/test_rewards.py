"""Reward definitions, attachments and rank-based allocation."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from gamelink.db.models import RewardClaim
from gamelink.errors import NoRewardAvailable, NotFoundError, ValidationError
from gamelink.events import CHANNEL_REWARD_CLAIMED
from gamelink.games.service import create_game
from gamelink.leaderboard.service import record_points
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


async def _board(db, scores: dict[str, int]) -> int:
    """An internal game whose all-time board holds ``scores`` in insertion order."""
    game = await create_game(db, "Board")
    await db.commit()
    for user, points in scores.items():
        await record_points(db, user, game.id, points)
        await db.commit()
    return game.id


async def _reward(db, name: str, required_rank: int, available: int = 5, game_id: int | None = None,
                  period: str = "all_time"):
    reward = await create_reward(db, name, "badge", name.lower(), required_rank, available)
    if game_id is not None:
        await attach_reward(db, reward.id, game_id, period)
    await db.commit()
    return reward


class TestDefinitions:
    @pytest.mark.asyncio
    async def test_create_and_update(self, db_session):
        reward = await _reward(db_session, "Gold", 1)
        updated = await update_reward(db_session, reward.id, available=9, is_active=False)
        await db_session.commit()
        assert updated.available == 9
        assert updated.is_active is False
        assert updated.name == "Gold"
        assert await list_rewards(db_session, active_only=True) == []

    @pytest.mark.asyncio
    async def test_validation(self, db_session):
        with pytest.raises(ValidationError):
            await create_reward(db_session, "Bad", "badge", "x", 0, 1)
        with pytest.raises(ValidationError):
            await create_reward(db_session, "Bad", "badge", "x", 1, -1)
        with pytest.raises(ValidationError):
            await create_reward(db_session, " ", "badge", "x", 1, 1)

    @pytest.mark.asyncio
    async def test_update_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            await update_reward(db_session, 999, name="x")


class TestAttachments:
    @pytest.mark.asyncio
    async def test_attach_is_idempotent(self, db_session):
        game_id = await _board(db_session, {})
        reward = await _reward(db_session, "Gold", 1)
        first = await attach_reward(db_session, reward.id, game_id, "weekly")
        again = await attach_reward(db_session, reward.id, game_id, "weekly")
        await db_session.commit()
        assert first.id == again.id
        assert len(await list_game_rewards(db_session, game_id)) == 1

    @pytest.mark.asyncio
    async def test_list_by_period_and_detach(self, db_session):
        game_id = await _board(db_session, {})
        reward = await _reward(db_session, "Gold", 1)
        await attach_reward(db_session, reward.id, game_id, "weekly")
        await attach_reward(db_session, reward.id, game_id, "monthly")
        await db_session.commit()

        assert [rg.period for rg in await list_game_rewards(db_session, game_id, "weekly")] == ["weekly"]

        assert await detach_reward(db_session, reward.id, game_id, "weekly") == 1
        await db_session.commit()
        assert [rg.period for rg in await list_game_rewards(db_session, game_id)] == ["monthly"]

        with pytest.raises(NotFoundError):
            await detach_reward(db_session, reward.id, game_id, "weekly")

    @pytest.mark.asyncio
    async def test_attach_to_unknown_targets(self, db_session):
        game_id = await _board(db_session, {})
        reward = await _reward(db_session, "Gold", 1)
        with pytest.raises(NotFoundError):
            await attach_reward(db_session, 999, game_id, "all_time")
        with pytest.raises(NotFoundError):
            await attach_reward(db_session, reward.id, 999, "all_time")
        with pytest.raises(ValidationError):
            await attach_reward(db_session, reward.id, game_id, "hourly")


class TestAllocate:
    @pytest.mark.asyncio
    async def test_best_fit_by_rank(self, db_session):
        game_id = await _board(db_session, {"u-1": 30, "u-2": 20, "u-3": 10, "u-4": 5})
        gold = await _reward(db_session, "Gold", 1, game_id=game_id)
        silver = await _reward(db_session, "Silver", 3, game_id=game_id)

        first = await allocate(db_session, None, "u-1", game_id, "all_time")
        second = await allocate(db_session, None, "u-2", game_id, "all_time")
        third = await allocate(db_session, None, "u-3", game_id, "all_time")
        assert (first.claim.reward_id, first.claim.rank) == (gold.id, 1)
        assert (second.claim.reward_id, second.claim.rank) == (silver.id, 2)
        assert (third.claim.reward_id, third.claim.rank) == (silver.id, 3)

        with pytest.raises(NoRewardAvailable):
            await allocate(db_session, None, "u-4", game_id, "all_time")

    @pytest.mark.asyncio
    async def test_claim_decrements_stock_once(self, db_session):
        game_id = await _board(db_session, {"u-1": 30})
        gold = await _reward(db_session, "Gold", 1, available=2, game_id=game_id)

        first = await allocate(db_session, None, "u-1", game_id, "all_time")
        again = await allocate(db_session, None, "u-1", game_id, "all_time")
        assert first.created is True
        assert again.created is False
        assert again.claim.id == first.claim.id

        await db_session.refresh(gold)
        assert gold.available == 1
        assert [c.id for c in await list_user_claims(db_session, "u-1")] == [first.claim.id]

    @pytest.mark.asyncio
    async def test_concurrent_claims_yield_one_row(self, session_factory, db_session):
        game_id = await _board(db_session, {"u-1": 30})
        gold = await _reward(db_session, "Gold", 1, available=5, game_id=game_id)

        async def attempt():
            async with session_factory() as db:
                outcome = await allocate(db, None, "u-1", game_id, "all_time")
                return outcome.claim.id, outcome.created

        results = await asyncio.gather(*(attempt() for _ in range(4)))
        assert len({claim_id for claim_id, _ in results}) == 1
        assert sorted(created for _, created in results) == [False, False, False, True]

        rows = await db_session.execute(select(func.count()).select_from(RewardClaim))
        assert rows.scalar_one() == 1
        await db_session.refresh(gold)
        assert gold.available == 4

    @pytest.mark.asyncio
    async def test_out_of_stock(self, db_session):
        game_id = await _board(db_session, {"u-1": 30, "u-2": 20})
        await _reward(db_session, "Gold", 2, available=1, game_id=game_id)

        await allocate(db_session, None, "u-1", game_id, "all_time")
        with pytest.raises(NoRewardAvailable):
            await allocate(db_session, None, "u-2", game_id, "all_time")

    @pytest.mark.asyncio
    async def test_inactive_reward_is_not_offered(self, db_session):
        game_id = await _board(db_session, {"u-1": 30})
        gold = await _reward(db_session, "Gold", 1, game_id=game_id)
        await update_reward(db_session, gold.id, is_active=False)
        await db_session.commit()
        with pytest.raises(NoRewardAvailable):
            await allocate(db_session, None, "u-1", game_id, "all_time")

    @pytest.mark.asyncio
    async def test_unranked_user(self, db_session):
        game_id = await _board(db_session, {"u-1": 30})
        await _reward(db_session, "Gold", 1, game_id=game_id)
        with pytest.raises(NoRewardAvailable):
            await allocate(db_session, None, "ghost", game_id, "all_time")

    @pytest.mark.asyncio
    async def test_reward_must_be_attached_for_the_period(self, db_session):
        game_id = await _board(db_session, {"u-1": 30})
        await _reward(db_session, "Gold", 1, game_id=game_id, period="weekly")
        with pytest.raises(NoRewardAvailable):
            await allocate(db_session, None, "u-1", game_id, "all_time")

        outcome = await allocate(db_session, None, "u-1", game_id, "weekly")
        assert outcome.claim.period == "weekly"

    @pytest.mark.asyncio
    async def test_past_window_and_bad_key(self, db_session):
        game_id = await _board(db_session, {"u-1": 30})
        await _reward(db_session, "Gold", 1, game_id=game_id, period="weekly")
        with pytest.raises(NoRewardAvailable):
            await allocate(db_session, None, "u-1", game_id, "weekly", "2020-W01")
        with pytest.raises(ValidationError):
            await allocate(db_session, None, "u-1", game_id, "weekly", "last-week")

    @pytest.mark.asyncio
    async def test_claim_event_published_once(self, db_session):
        redis = AsyncMock()
        game_id = await _board(db_session, {"u-1": 30})
        await _reward(db_session, "Gold", 1, game_id=game_id)

        await allocate(db_session, redis, "u-1", game_id, "all_time")
        await allocate(db_session, redis, "u-1", game_id, "all_time")
        redis.publish.assert_awaited_once()
        assert redis.publish.await_args.args[0] == CHANNEL_REWARD_CLAIMED
