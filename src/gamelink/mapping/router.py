"""Catalog sync and identity mapping API, 13 routes.

Catalog (5), game links (4), user links (4).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from gamelink.database import get_session
from gamelink.db.models import ExternalGame, ExternalUser, GameLink, UserLink
from gamelink.errors import MappingNotFound
from gamelink.mapping.schemas import (
    AvailableGamesResponse,
    AvailableInternalGame,
    AvailableUsersResponse,
    ExternalGameActiveRequest,
    ExternalGameResponse,
    ExternalGameSyncRequest,
    ExternalGameSyncResponse,
    ExternalUserResponse,
    ExternalUserSyncRequest,
    ExternalUserSyncResponse,
    GameLinkRequest,
    GameLinkResponse,
    GameUnlinkRequest,
    UserLinkRequest,
    UserLinkResponse,
    UserUnlinkRequest,
)
from gamelink.mapping.service import (
    available_external_games,
    available_external_users,
    available_internal_games,
    link_game,
    link_user,
    list_external_games,
    list_external_users,
    resolve_internal_game,
    resolve_internal_user,
    set_external_game_active,
    sync_external_game,
    sync_external_user,
    unlink_game,
    unlink_user,
)
from gamelink.storage import run_unit_of_work

router = APIRouter(prefix="/api/v1", tags=["Mapping"])


def _game_response(game: ExternalGame, internal_id: int | None) -> ExternalGameResponse:
    return ExternalGameResponse(
        external_id=game.external_id,
        name=game.name,
        description=game.description,
        is_active=game.is_active,
        internal_id=internal_id,
        created_at=game.created_at,
    )


def _user_response(user: ExternalUser, internal_user_id: int | None) -> ExternalUserResponse:
    return ExternalUserResponse(
        external_user_id=user.external_user_id,
        username=user.username,
        email=user.email,
        avatar_url=user.avatar_url,
        is_active=user.is_active,
        internal_user_id=internal_user_id,
    )


# ── Catalog ──


@router.post("/catalog/games", response_model=ExternalGameSyncResponse)
async def sync_catalog_game(
    body: ExternalGameSyncRequest,
    db: AsyncSession = Depends(get_session),
):
    """Import or refresh a partner game. Idempotent."""

    async def _op():
        game, created = await sync_external_game(
            db, body.external_id, body.name, body.description, body.is_active,
        )
        await db.commit()
        return game, created

    game, created = await run_unit_of_work(db, _op, name="sync_catalog_game")
    internal_id = await resolve_internal_game(db, game.external_id)
    return ExternalGameSyncResponse(created=created, game=_game_response(game, internal_id))


@router.patch("/catalog/games/{external_id}", response_model=ExternalGameResponse)
async def update_catalog_game(
    external_id: str,
    body: ExternalGameActiveRequest,
    db: AsyncSession = Depends(get_session),
):
    """Enable or disable a partner game."""

    async def _op():
        game = await set_external_game_active(db, external_id, body.is_active)
        await db.commit()
        return game

    game = await run_unit_of_work(db, _op, name="update_catalog_game")
    return _game_response(game, await resolve_internal_game(db, external_id))


@router.get("/catalog/games", response_model=list[ExternalGameResponse])
async def get_catalog_games(
    active: bool = Query(False, description="Only active games"),
    db: AsyncSession = Depends(get_session),
):
    """All partner games with their link state."""
    rows = await list_external_games(db, active_only=active)
    return [_game_response(game, internal_id) for game, internal_id in rows]


@router.post("/catalog/users", response_model=ExternalUserSyncResponse)
async def sync_catalog_user(
    body: ExternalUserSyncRequest,
    db: AsyncSession = Depends(get_session),
):
    """Import or refresh a partner user. Idempotent."""

    async def _op():
        user, created = await sync_external_user(
            db, body.external_user_id, body.username, body.email, body.avatar_url, body.is_active,
        )
        await db.commit()
        return user, created

    user, created = await run_unit_of_work(db, _op, name="sync_catalog_user")
    internal_user_id = await resolve_internal_user(db, user.external_user_id)
    return ExternalUserSyncResponse(created=created, user=_user_response(user, internal_user_id))


@router.get("/catalog/users", response_model=list[ExternalUserResponse])
async def get_catalog_users(db: AsyncSession = Depends(get_session)):
    """All partner users with their link state."""
    return [_user_response(user, internal) for user, internal in await list_external_users(db)]


# ── Game links ──


@router.post("/mappings/games/link", response_model=GameLinkResponse)
async def link_game_endpoint(
    body: GameLinkRequest,
    db: AsyncSession = Depends(get_session),
):
    """Link a partner game to an internal game. 409 if either side is taken."""
    link = await run_unit_of_work(
        db, lambda: link_game(db, body.external_id, body.internal_id), name="link_game",
    )
    return GameLinkResponse.model_validate(link)


@router.post("/mappings/games/unlink", response_model=GameLinkResponse)
async def unlink_game_endpoint(
    body: GameUnlinkRequest,
    db: AsyncSession = Depends(get_session),
):
    """Clear the internal side of a game link. 404 if no mapping exists."""
    link = await run_unit_of_work(db, lambda: unlink_game(db, body.external_id), name="unlink_game")
    return GameLinkResponse.model_validate(link)


@router.get("/mappings/games/available", response_model=AvailableGamesResponse)
async def available_games_endpoint(db: AsyncSession = Depends(get_session)):
    """Games on either side that can still be linked."""
    external = await available_external_games(db)
    internal = await available_internal_games(db)
    return AvailableGamesResponse(
        external=[_game_response(g, None) for g in external],
        internal=[AvailableInternalGame(id=g.id, name=g.name) for g in internal],
    )


@router.get("/mappings/games/{external_id}", response_model=GameLinkResponse)
async def resolve_game_endpoint(
    external_id: str,
    db: AsyncSession = Depends(get_session),
):
    """Current link for a partner game (internal id may be null)."""

    link = await db.get(GameLink, external_id)
    if link is None:
        raise MappingNotFound(f"No mapping for external game {external_id}")
    return GameLinkResponse.model_validate(link)


# ── User links ──


@router.post("/mappings/users/link", response_model=UserLinkResponse)
async def link_user_endpoint(
    body: UserLinkRequest,
    db: AsyncSession = Depends(get_session),
):
    """Link a partner user to an internal user id."""
    link = await run_unit_of_work(
        db, lambda: link_user(db, body.external_user_id, body.internal_user_id), name="link_user",
    )
    return UserLinkResponse.model_validate(link)


@router.post("/mappings/users/unlink", response_model=UserLinkResponse)
async def unlink_user_endpoint(
    body: UserUnlinkRequest,
    db: AsyncSession = Depends(get_session),
):
    """Clear the internal side of a user link."""
    link = await run_unit_of_work(db, lambda: unlink_user(db, body.external_user_id), name="unlink_user")
    return UserLinkResponse.model_validate(link)


@router.get("/mappings/users/available", response_model=AvailableUsersResponse)
async def available_users_endpoint(db: AsyncSession = Depends(get_session)):
    """Partner users without an internal counterpart."""
    return AvailableUsersResponse(
        external=[_user_response(u, None) for u in await available_external_users(db)],
    )


@router.get("/mappings/users/{external_user_id}", response_model=UserLinkResponse)
async def resolve_user_endpoint(
    external_user_id: str,
    db: AsyncSession = Depends(get_session),
):
    """Current link for a partner user (internal id may be null)."""

    link = await db.get(UserLink, external_user_id)
    if link is None:
        raise MappingNotFound(f"No mapping for external user {external_user_id}")
    return UserLinkResponse.model_validate(link)
