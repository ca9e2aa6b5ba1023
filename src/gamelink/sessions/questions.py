"""Question lookup and selection for quiz sessions."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gamelink.db.models import QuizQuestion


def option_ids(question: QuizQuestion) -> list[str]:
    return [str(option["id"]) for option in question.options]


def public_options(question: QuizQuestion) -> list[dict]:
    """Options as shown to the player (the correct answer is never included)."""
    return [dict(option) for option in question.options]


async def get_question(db: AsyncSession, question_id: str) -> QuizQuestion | None:
    result = await db.execute(select(QuizQuestion).where(QuizQuestion.question_id == question_id))
    return result.scalar_one_or_none()


async def count_active(db: AsyncSession, game_type: str) -> int:
    """Number of active questions of a game type."""
    result = await db.execute(
        select(func.count())
        .select_from(QuizQuestion)
        .where(QuizQuestion.game_type == game_type, QuizQuestion.is_active.is_(True))
    )
    return result.scalar_one()


async def pick_question(
    db: AsyncSession,
    game_type: str,
    difficulty: int,
    exclude_ids: list[str],
) -> QuizQuestion | None:
    """
    Pick the next unissued question.

    Prefers the requested difficulty and falls back to any difficulty of the
    same game type. Order is deterministic (difficulty distance, then id) so
    a session walks the bank the same way every time.
    """
    base = select(QuizQuestion).where(
        QuizQuestion.game_type == game_type,
        QuizQuestion.is_active.is_(True),
    )
    if exclude_ids:
        base = base.where(QuizQuestion.question_id.not_in(exclude_ids))

    result = await db.execute(
        base.where(QuizQuestion.difficulty == difficulty).order_by(QuizQuestion.question_id).limit(1)
    )
    question = result.scalar_one_or_none()
    if question is not None:
        return question

    result = await db.execute(base.order_by(QuizQuestion.difficulty, QuizQuestion.question_id))
    candidates = list(result.scalars())
    if not candidates:
        return None
    return min(candidates, key=lambda q: (abs(q.difficulty - difficulty), q.question_id))
