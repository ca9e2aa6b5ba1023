"""Pydantic models for mapping and catalog endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gamelink.schemas import ApiModel

# ── Catalog ──


class ExternalGameSyncRequest(ApiModel):
    external_id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    is_active: bool = True


class ExternalGameActiveRequest(ApiModel):
    is_active: bool


class ExternalGameResponse(ApiModel):
    external_id: str
    name: str
    description: str | None = None
    is_active: bool
    internal_id: int | None = None
    created_at: datetime | None = None


class ExternalUserSyncRequest(ApiModel):
    external_user_id: str = Field(min_length=1, max_length=64)
    username: str = Field(min_length=1, max_length=128)
    email: str | None = Field(default=None, max_length=320)
    avatar_url: str | None = None
    is_active: bool = True


class ExternalUserResponse(ApiModel):
    external_user_id: str
    username: str
    email: str | None = None
    avatar_url: str | None = None
    is_active: bool
    internal_user_id: int | None = None


class SyncResponse(ApiModel):
    created: bool


class ExternalGameSyncResponse(SyncResponse):
    game: ExternalGameResponse


class ExternalUserSyncResponse(SyncResponse):
    user: ExternalUserResponse


# ── Links ──


class GameLinkRequest(ApiModel):
    external_id: str = Field(min_length=1, max_length=64)
    internal_id: int = Field(ge=1)


class GameUnlinkRequest(ApiModel):
    external_id: str = Field(min_length=1, max_length=64)


class GameLinkResponse(ApiModel):
    external_id: str
    internal_id: int | None
    linked_at: datetime | None = None


class UserLinkRequest(ApiModel):
    external_user_id: str = Field(min_length=1, max_length=64)
    internal_user_id: int = Field(ge=1)


class UserUnlinkRequest(ApiModel):
    external_user_id: str = Field(min_length=1, max_length=64)


class UserLinkResponse(ApiModel):
    external_user_id: str
    internal_user_id: int | None
    linked_at: datetime | None = None


class AvailableInternalGame(ApiModel):
    id: int
    name: str


class AvailableGamesResponse(ApiModel):
    external: list[ExternalGameResponse]
    internal: list[AvailableInternalGame]


class AvailableUsersResponse(ApiModel):
    external: list[ExternalUserResponse]
