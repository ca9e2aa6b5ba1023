"""Leaderboard aggregation, ranking and window rollover."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import make_player
from gamelink.enums import Period
from gamelink.errors import InvariantViolation, NotFoundError, ValidationError
from gamelink.games.service import create_game
from gamelink.leaderboard.service import get_leaderboard, get_user_rank, record_points
from gamelink.mapping.service import sync_external_user
from gamelink.rewards.service import allocate, attach_reward, create_reward

SUNDAY = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
NEXT_MONDAY = datetime(2026, 10, 19, 0, 0, 1, tzinfo=timezone.utc)


async def _game(db, **fields) -> int:
    game = await create_game(db, "Board", **fields)
    await db.commit()
    return game.id


async def _credit(db, user: str, game_id: int, points: int, at: datetime = SUNDAY):
    touched = await record_points(db, user, game_id, points, at=at)
    await db.commit()
    return touched


class TestRecordPoints:
    @pytest.mark.asyncio
    async def test_all_enabled_windows_are_touched(self, db_session):
        game_id = await _game(db_session)
        touched = await _credit(db_session, "u-1", game_id, 10)
        assert touched == [
            (Period.ALL_TIME, "all"),
            (Period.MONTHLY, "2026-10"),
            (Period.WEEKLY, "2026-W42"),
        ]

    @pytest.mark.asyncio
    async def test_disabled_periods_are_skipped(self, db_session):
        game_id = await _game(db_session, weekly_leaderboard=False, monthly_leaderboard=False)
        touched = await _credit(db_session, "u-1", game_id, 10)
        assert touched == [(Period.ALL_TIME, "all")]
        board = await get_leaderboard(db_session, game_id, Period.WEEKLY, "2026-W42")
        assert board["entries"] == []

    @pytest.mark.asyncio
    async def test_points_accumulate(self, db_session):
        game_id = await _game(db_session)
        await _credit(db_session, "u-1", game_id, 10)
        await _credit(db_session, "u-1", game_id, 7)
        standing = await get_user_rank(db_session, "u-1", game_id, "all_time")
        assert standing["points"] == 17
        assert standing["total"] == 1

    @pytest.mark.asyncio
    async def test_week_rollover_starts_a_fresh_window(self, db_session):
        game_id = await _game(db_session)
        await _credit(db_session, "u-1", game_id, 10, at=SUNDAY)
        await _credit(db_session, "u-1", game_id, 4, at=NEXT_MONDAY)

        old = await get_user_rank(db_session, "u-1", game_id, "weekly", "2026-W42")
        new = await get_user_rank(db_session, "u-1", game_id, "weekly", "2026-W43")
        total = await get_user_rank(db_session, "u-1", game_id, "all_time")
        assert (old["points"], new["points"], total["points"]) == (10, 4, 14)

    @pytest.mark.asyncio
    async def test_unlinked_game_is_skipped(self, db_session):
        assert await record_points(db_session, "u-1", None, 10) == []

    @pytest.mark.asyncio
    async def test_negative_delta_is_rejected(self, db_session):
        game_id = await _game(db_session)
        with pytest.raises(InvariantViolation):
            await record_points(db_session, "u-1", game_id, -1)

    @pytest.mark.asyncio
    async def test_zero_points_still_places_user(self, db_session):
        game_id = await _game(db_session)
        await _credit(db_session, "u-1", game_id, 0)
        standing = await get_user_rank(db_session, "u-1", game_id, "all_time")
        assert standing["rank"] == 1
        assert standing["points"] == 0


class TestRanking:
    @pytest.mark.asyncio
    async def test_ordering_and_ties(self, db_session):
        game_id = await _game(db_session)
        await make_player(db_session, "u-a", "alice")
        await make_player(db_session, "u-b", "bob")
        await _credit(db_session, "u-a", game_id, 20)
        await _credit(db_session, "u-b", game_id, 20)
        await _credit(db_session, "u-c", game_id, 30)

        board = await get_leaderboard(db_session, game_id, "all_time")
        assert [(e["rank"], e["user_id"], e["points"]) for e in board["entries"]] == [
            (1, "u-c", 30),
            (2, "u-a", 20),
            (3, "u-b", 20),
        ]
        assert board["entries"][1]["username"] == "alice"
        assert board["entries"][0]["username"] == "u-c"
        assert board["total"] == 3

        for user, rank in (("u-c", 1), ("u-a", 2), ("u-b", 3)):
            assert (await get_user_rank(db_session, user, game_id, "all_time"))["rank"] == rank

    @pytest.mark.asyncio
    async def test_ranks_are_stable_between_reads(self, db_session):
        game_id = await _game(db_session)
        for user in ("u-1", "u-2", "u-3"):
            await _credit(db_session, user, game_id, 5)
        first = await get_leaderboard(db_session, game_id, "all_time")
        second = await get_leaderboard(db_session, game_id, "all_time")
        assert first["entries"] == second["entries"]

    @pytest.mark.asyncio
    async def test_limit(self, db_session):
        game_id = await _game(db_session)
        for idx in range(5):
            await _credit(db_session, f"u-{idx}", game_id, idx + 1)
        board = await get_leaderboard(db_session, game_id, "all_time", limit=2)
        assert [e["user_id"] for e in board["entries"]] == ["u-4", "u-3"]
        assert board["total"] == 5

    @pytest.mark.asyncio
    async def test_user_without_entry(self, db_session):
        game_id = await _game(db_session)
        await _credit(db_session, "u-1", game_id, 5)
        standing = await get_user_rank(db_session, "ghost", game_id, "all_time")
        assert standing == {"period": "all_time", "period_key": "all", "rank": 0, "points": 0, "total": 1}

    @pytest.mark.asyncio
    async def test_unknown_game(self, db_session):
        with pytest.raises(NotFoundError):
            await get_leaderboard(db_session, 999, "all_time")

    @pytest.mark.asyncio
    async def test_bad_period_and_key(self, db_session):
        game_id = await _game(db_session)
        with pytest.raises(ValidationError):
            await get_leaderboard(db_session, game_id, "daily")
        with pytest.raises(ValidationError):
            await get_leaderboard(db_session, game_id, "weekly", "2026-10")

    @pytest.mark.asyncio
    async def test_alias_period(self, db_session):
        game_id = await _game(db_session)
        await _credit(db_session, "u-1", game_id, 5)
        board = await get_leaderboard(db_session, game_id, "global")
        assert board["period"] == "all_time"
        assert len(board["entries"]) == 1


class TestGlobalBoard:
    @pytest.mark.asyncio
    async def test_points_are_summed_across_games(self, db_session):
        books = await _game(db_session)
        years = await _game(db_session)
        await _credit(db_session, "u-a", books, 20)
        await _credit(db_session, "u-b", books, 15)
        await _credit(db_session, "u-b", years, 15)
        await _credit(db_session, "u-c", years, 20)

        board = await get_leaderboard(db_session, None, "all_time")
        assert board["game_id"] is None
        assert [(e["rank"], e["user_id"], e["points"]) for e in board["entries"]] == [
            (1, "u-b", 30),
            (2, "u-a", 20),
            (3, "u-c", 20),
        ]
        assert board["total"] == 3

    @pytest.mark.asyncio
    async def test_window_and_limit(self, db_session):
        game_id = await _game(db_session)
        await _credit(db_session, "u-1", game_id, 10)
        await _credit(db_session, "u-2", game_id, 5, at=NEXT_MONDAY)
        await _credit(db_session, "u-3", game_id, 7, at=NEXT_MONDAY)

        board = await get_leaderboard(db_session, None, "weekly", "2026-W43", limit=1)
        assert [e["user_id"] for e in board["entries"]] == ["u-3"]
        assert board["total"] == 2

    @pytest.mark.asyncio
    async def test_empty_window(self, db_session):
        board = await get_leaderboard(db_session, None, "monthly", "2020-01")
        assert board["entries"] == []
        assert board["total"] == 0

    @pytest.mark.asyncio
    async def test_entries_carry_profile(self, db_session):
        game_id = await _game(db_session)
        await sync_external_user(db_session, "u-1", "alice", avatar_url="https://cdn.example.org/alice.png")
        await db_session.commit()
        await _credit(db_session, "u-1", game_id, 10)
        await _credit(db_session, "u-2", game_id, 5)

        board = await get_leaderboard(db_session, None, "all_time")
        first, second = board["entries"]
        assert (first["username"], first["avatar_url"]) == ("alice", "https://cdn.example.org/alice.png")
        assert (second["username"], second["avatar_url"]) == ("u-2", None)


class TestBoardWithRewards:
    @staticmethod
    async def _claimed_board(db) -> int:
        game_id = await _game(db)
        for user, points in (("u-1", 30), ("u-2", 20), ("u-3", 10)):
            await record_points(db, user, game_id, points)
            await db.commit()
        for name, rank in (("Gold", 1), ("Silver", 2)):
            reward = await create_reward(db, name, "badge", name.lower(), rank, 5)
            await attach_reward(db, reward.id, game_id, "all_time")
            await db.commit()
        await allocate(db, None, "u-1", game_id, "all_time")
        await allocate(db, None, "u-2", game_id, "all_time")
        return game_id

    @pytest.mark.asyncio
    async def test_claims_are_attached(self, db_session):
        game_id = await self._claimed_board(db_session)

        board = await get_leaderboard(db_session, game_id, "all_time", with_rewards=True)
        rewards = {e["user_id"]: [r["name"] for r in e["rewards"]] for e in board["entries"]}
        assert rewards == {"u-1": ["Gold"], "u-2": ["Silver"], "u-3": []}
        gold = board["entries"][0]["rewards"][0]
        assert gold["rank"] == 1
        assert gold["game_id"] == game_id
        assert gold["claimed_at"] is not None

    @pytest.mark.asyncio
    async def test_claims_are_omitted_by_default(self, db_session):
        game_id = await self._claimed_board(db_session)
        board = await get_leaderboard(db_session, game_id, "all_time")
        assert all("rewards" not in e for e in board["entries"])

    @pytest.mark.asyncio
    async def test_claims_stay_in_their_window(self, db_session):
        game_id = await self._claimed_board(db_session)
        board = await get_leaderboard(db_session, game_id, "monthly", with_rewards=True)
        assert all(e["rewards"] == [] for e in board["entries"])

    @pytest.mark.asyncio
    async def test_global_board_collects_claims_from_every_game(self, db_session):
        first = await self._claimed_board(db_session)
        second = await self._claimed_board(db_session)

        board = await get_leaderboard(db_session, None, "all_time", with_rewards=True)
        leader = board["entries"][0]
        assert leader["user_id"] == "u-1"
        assert leader["points"] == 60
        assert sorted(r["game_id"] for r in leader["rewards"]) == sorted([first, second])
