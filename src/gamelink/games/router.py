"""Internal games API, 5 endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from gamelink.database import get_session
from gamelink.db.models import InternalGame
from gamelink.games.schemas import GameCreateRequest, GameResponse, GameUpdateRequest
from gamelink.games.service import create_game, get_game, list_games, toggle_game, update_game
from gamelink.mapping.service import resolve_external_game
from gamelink.storage import run_unit_of_work

router = APIRouter(prefix="/api/v1/games", tags=["Games"])


async def _to_response(db: AsyncSession, game: InternalGame) -> GameResponse:
    response = GameResponse.model_validate(game)
    response.external_id = await resolve_external_game(db, game.id)
    return response


@router.post("", response_model=GameResponse, status_code=status.HTTP_201_CREATED)
async def create_game_endpoint(
    body: GameCreateRequest,
    db: AsyncSession = Depends(get_session),
):
    """Create an internal game."""
    fields = body.model_dump(exclude={"name"}, exclude_none=True)

    async def _op():
        game = await create_game(db, body.name, **fields)
        await db.commit()
        return game

    game = await run_unit_of_work(db, _op, name="create_game")
    return await _to_response(db, game)


@router.get("", response_model=list[GameResponse])
async def list_games_endpoint(
    active: bool = Query(False, description="Only active games"),
    db: AsyncSession = Depends(get_session),
):
    games = await list_games(db, active_only=active)
    return [await _to_response(db, game) for game in games]


@router.get("/{game_id}", response_model=GameResponse)
async def get_game_endpoint(game_id: int, db: AsyncSession = Depends(get_session)):
    return await _to_response(db, await get_game(db, game_id))


@router.patch("/{game_id}", response_model=GameResponse)
async def update_game_endpoint(
    game_id: int,
    body: GameUpdateRequest,
    db: AsyncSession = Depends(get_session),
):
    """Partial update; omitted fields keep their value."""
    fields = body.model_dump(exclude_none=True)

    async def _op():
        game = await update_game(db, game_id, **fields)
        await db.commit()
        return game

    game = await run_unit_of_work(db, _op, name="update_game")
    return await _to_response(db, game)


@router.post("/{game_id}/toggle", response_model=GameResponse)
async def toggle_game_endpoint(game_id: int, db: AsyncSession = Depends(get_session)):
    """Enable or disable a game."""

    async def _op():
        game = await toggle_game(db, game_id)
        await db.commit()
        return game

    game = await run_unit_of_work(db, _op, name="toggle_game")
    return await _to_response(db, game)
