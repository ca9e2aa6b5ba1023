"""Pydantic models for reward endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gamelink.schemas import ApiModel


class RewardCreateRequest(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    type: str = Field(min_length=1, max_length=32)
    value: str = Field(min_length=1, max_length=255)
    required_rank: int = Field(ge=1)
    available: int = Field(ge=0)
    is_active: bool = True


class RewardUpdateRequest(ApiModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    type: str | None = Field(default=None, min_length=1, max_length=32)
    value: str | None = Field(default=None, min_length=1, max_length=255)
    required_rank: int | None = Field(default=None, ge=1)
    available: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class RewardResponse(ApiModel):
    id: int
    name: str
    description: str
    type: str
    value: str
    required_rank: int
    available: int
    is_active: bool
    created_at: datetime | None = None


class RewardAttachRequest(ApiModel):
    game_id: int = Field(ge=1)
    period: str


class GameRewardResponse(ApiModel):
    id: int
    reward_id: int
    game_id: int
    period: str
    reward: RewardResponse


class ClaimRequest(ApiModel):
    user_id: str = Field(min_length=1, max_length=64)
    game_id: int = Field(ge=1)
    period: str
    period_key: str | None = None


class ClaimResponse(ApiModel):
    claim_id: str
    user_id: str
    game_id: int
    period: str
    period_key: str
    rank: int
    claimed_at: datetime
    created: bool
    reward: RewardResponse
