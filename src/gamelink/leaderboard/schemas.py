"""Pydantic response models for leaderboard endpoints."""

from __future__ import annotations

from datetime import datetime

from gamelink.schemas import ApiModel


class ClaimedRewardResponse(ApiModel):
    claim_id: str
    reward_id: int
    game_id: int
    name: str
    type: str
    value: str
    rank: int
    claimed_at: datetime


class LeaderboardEntryResponse(ApiModel):
    rank: int
    user_id: str
    username: str
    avatar_url: str | None = None
    points: int
    rewards: list[ClaimedRewardResponse] | None = None


class LeaderboardResponse(ApiModel):
    game_id: int | None = None
    period: str
    period_key: str
    entries: list[LeaderboardEntryResponse]
    total: int


class UserRankResponse(ApiModel):
    period: str
    period_key: str
    rank: int
    points: int
    total: int
