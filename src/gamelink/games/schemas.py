"""Pydantic models for internal game endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gamelink.enums import CreditPolicy, GameType
from gamelink.schemas import ApiModel


class GameCreateRequest(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    game_type: GameType | None = None
    difficulty: int | None = Field(default=None, ge=1, le=3)
    timer_duration: int | None = Field(default=None, ge=1)
    question_count: int | None = Field(default=None, ge=1)
    base_points: int | None = Field(default=None, ge=1)
    weekly_leaderboard: bool | None = None
    monthly_leaderboard: bool | None = None
    credit_policy: CreditPolicy | None = None


class GameUpdateRequest(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    game_type: GameType | None = None
    difficulty: int | None = Field(default=None, ge=1, le=3)
    timer_duration: int | None = Field(default=None, ge=1)
    question_count: int | None = Field(default=None, ge=1)
    base_points: int | None = Field(default=None, ge=1)
    weekly_leaderboard: bool | None = None
    monthly_leaderboard: bool | None = None
    credit_policy: CreditPolicy | None = None


class GameResponse(ApiModel):
    id: int
    name: str
    description: str
    game_type: str
    difficulty: int
    timer_duration: int
    question_count: int
    base_points: int
    weekly_leaderboard: bool
    monthly_leaderboard: bool
    credit_policy: str
    is_active: bool
    external_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
