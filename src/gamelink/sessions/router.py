"""Quiz session API, 4 endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from gamelink.database import get_session
from gamelink.db.models import SessionAnswer
from gamelink.dependencies import get_redis_dep
from gamelink.enums import SessionStatus
from gamelink.errors import AlreadyAnswered
from gamelink.sessions.questions import public_options
from gamelink.sessions.schemas import (
    AnswerRequest,
    AnswerResponse,
    QuestionResponse,
    SessionCreateRequest,
    SessionResponse,
)
from gamelink.sessions.service import (
    create_session,
    get_game_config,
    get_session_state,
    next_question,
    submit_answer,
)
from gamelink.storage import run_unit_of_work

router = APIRouter(prefix="/api/v1/sessions", tags=["Sessions"])


def _answer_response(answer: SessionAnswer, session_score: int, answered: int, total: int,
                     completed: bool, replayed: bool) -> AnswerResponse:
    return AnswerResponse(
        is_correct=answer.is_correct,
        points=answer.points,
        correct_answer=None if answer.is_correct else answer.correct_option_id,
        session_score=session_score,
        answered_count=answered,
        question_count=total,
        completed=completed,
        replayed=replayed,
    )


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session_endpoint(
    body: SessionCreateRequest,
    db: AsyncSession = Depends(get_session),
):
    """Open a quiz session. 400 for unknown ids, 409 when disabled."""

    async def _op():
        session = await create_session(db, body.external_user_id, body.external_game_id)
        await db.commit()
        return session

    session = await run_unit_of_work(db, _op, name="create_session")
    return SessionResponse(
        session_id=session.session_id,
        external_user_id=session.external_user_id,
        external_game_id=session.external_game_id,
        internal_game_id=session.internal_game_id,
        status=session.status,
        score=session.score,
        answered_count=session.answered_count,
        question_count=session.question_count,
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session_endpoint(session_id: str, db: AsyncSession = Depends(get_session)):
    session = await run_unit_of_work(db, lambda: get_session_state(db, session_id), name="get_session")
    return SessionResponse.model_validate(session)


@router.get("/{session_id}/question", response_model=QuestionResponse)
async def next_question_endpoint(
    session_id: str,
    difficulty: int | None = Query(None, description="1 (easy) to 3 (hard)"),
    db: AsyncSession = Depends(get_session),
):
    """Issue the next question, or the currently open one."""
    session, question = await run_unit_of_work(
        db, lambda: next_question(db, session_id, difficulty), name="next_question",
    )
    config = await get_game_config(db, session.internal_game_id)
    return QuestionResponse(
        session_id=session.session_id,
        question_id=question.question_id,
        prompt=question.prompt,
        snippet=question.snippet,
        options=public_options(question),
        difficulty=question.difficulty,
        time_limit_seconds=config.timer_duration,
        question_number=session.answered_count + 1,
        question_count=session.question_count,
    )


@router.post("/{session_id}/answer", response_model=AnswerResponse)
async def submit_answer_endpoint(
    session_id: str,
    body: AnswerRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """
    Submit an answer to the open question.

    A repeated submission for an answered question returns the recorded
    result with replayed=true and never adds points twice.
    """
    try:
        outcome = await run_unit_of_work(
            db,
            lambda: submit_answer(db, redis, session_id, body.question_id, body.option_id, body.elapsed_seconds),
            name="submit_answer",
        )
    except AlreadyAnswered as exc:
        session = await run_unit_of_work(db, lambda: get_session_state(db, session_id), name="replay_answer")
        return _answer_response(
            exc.answer,
            session.score,
            session.answered_count,
            session.question_count,
            completed=session.status == SessionStatus.COMPLETED.value,
            replayed=True,
        )

    session = outcome.session
    return _answer_response(
        outcome.answer,
        session.score,
        session.answered_count,
        session.question_count,
        completed=outcome.completed,
        replayed=False,
    )
