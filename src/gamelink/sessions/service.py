"""Quiz session lifecycle: create, issue questions, score answers, expire.

State machine:
    CREATED -> IN_PROGRESS -> COMPLETED
    CREATED | IN_PROGRESS -> EXPIRED (idle longer than session_ttl_minutes)

Submissions for one session are serialized by an in-process keyed lock, a
row lock (SELECT ... FOR UPDATE where supported) and a compare-and-set on
pending_question_id. The UNIQUE(session_id, question_id) constraint on
session_answers is the final guard: a duplicate submission always lands
on AlreadyAnswered carrying the recorded answer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from gamelink.config import get_settings
from gamelink.db.models import GameSession, InternalGame, SessionAnswer
from gamelink.enums import CreditPolicy, SessionStatus
from gamelink.errors import (
    AlreadyAnswered,
    Disabled,
    InvariantViolation,
    QuestionsExhausted,
    SessionNotFound,
    SessionTerminal,
    UnknownGame,
    UnknownOption,
    UnknownQuestion,
    UnknownUser,
    ValidationError,
)
from gamelink.events import CHANNEL_LEADERBOARD_UPDATED, CHANNEL_SESSION_COMPLETED, publish
from gamelink.leaderboard.service import record_points
from gamelink.locks import session_locks
from gamelink.mapping.service import (
    get_external_game,
    get_external_user,
    resolve_internal_game,
    resolve_internal_user,
)
from gamelink.scoring import score
from gamelink.sessions.questions import count_active, get_question, option_ids, pick_question

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from gamelink.db.models import QuizQuestion

logger = structlog.get_logger()

OPEN_STATUSES = (SessionStatus.CREATED.value, SessionStatus.IN_PROGRESS.value)


@dataclass(frozen=True)
class GameConfig:
    """Effective quiz configuration for a session."""

    game_type: str
    difficulty: int
    timer_duration: int
    base_points: int
    question_count: int
    credit_policy: CreditPolicy


@dataclass
class AnswerOutcome:
    session: GameSession
    answer: SessionAnswer
    completed: bool
    replayed: bool = False


def _aware(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _default_config() -> GameConfig:
    settings = get_settings()
    return GameConfig(
        game_type=settings.default_game_type,
        difficulty=settings.default_difficulty,
        timer_duration=settings.default_timer_duration,
        base_points=settings.default_base_points,
        question_count=settings.default_question_count,
        credit_policy=CreditPolicy.ON_COMPLETION,
    )


def _config_from_game(game: InternalGame) -> GameConfig:
    return GameConfig(
        game_type=game.game_type,
        difficulty=game.difficulty,
        timer_duration=game.timer_duration,
        base_points=game.base_points,
        question_count=game.question_count,
        credit_policy=CreditPolicy(game.credit_policy),
    )


async def get_game_config(db: AsyncSession, internal_game_id: int | None) -> GameConfig:
    """Config of the linked internal game, or the defaults when unattributed."""
    if internal_game_id is None:
        return _default_config()
    game = await db.get(InternalGame, internal_game_id)
    if game is None:
        return _default_config()
    return _config_from_game(game)


async def _load(db: AsyncSession, session_id: str, *, for_update: bool = False) -> GameSession:
    stmt = (
        select(GameSession)
        .where(GameSession.session_id == session_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    session = result.scalar_one_or_none()
    if session is None:
        raise SessionNotFound(f"Session {session_id} not found")
    return session


def _is_stale(session: GameSession, now: datetime) -> bool:
    if SessionStatus(session.status).is_terminal:
        return False
    ttl = timedelta(minutes=get_settings().session_ttl_minutes)
    return _aware(session.updated_at) + ttl < now


def _expire(session: GameSession, now: datetime) -> None:
    session.status = SessionStatus.EXPIRED.value
    session.pending_question_id = None
    session.pending_issued_at = None
    session.updated_at = now


async def _ensure_open(db: AsyncSession, session: GameSession, now: datetime) -> None:
    """Apply lazy expiry, then reject terminal sessions."""
    if _is_stale(session, now):
        _expire(session, now)
        await db.commit()
        logger.info("session_expired", session_id=session.session_id, lazy=True)
    if SessionStatus(session.status).is_terminal:
        raise SessionTerminal(f"Session {session.session_id} is {session.status}")


async def _complete_short(db: AsyncSession, session: GameSession, now: datetime) -> None:
    """Complete a session whose question bank ran dry before question_count.

    The session is closed at the number of answers it has, and any score not
    yet on the leaderboard is credited.
    """
    credit = session.score - session.credited_points
    await record_points(db, session.external_user_id, session.internal_game_id, credit, at=now)
    if session.internal_game_id is not None:
        session.credited_points = session.score
    session.status = SessionStatus.COMPLETED.value
    session.question_count = session.answered_count
    session.pending_question_id = None
    session.pending_issued_at = None
    session.completed_at = now
    session.updated_at = now
    await db.commit()
    logger.warning("session_completed_short", session_id=session.session_id, answered=session.answered_count)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def create_session(
    db: AsyncSession,
    external_user_id: str,
    external_game_id: str,
) -> GameSession:
    """
    Open a session for an external user on an external game.

    An unlinked game is accepted: the session runs on the default
    configuration with internal_game_id NULL and never reaches a leaderboard.
    question_count is capped at the number of active questions of the game type.

    Raises:
        UnknownUser / UnknownGame: If either id is not in the catalog.
        Disabled: If the user, the external game or its internal game is disabled.
        QuestionsExhausted: If the game type has no active questions.
    """
    if not external_user_id or not external_user_id.strip():
        raise ValidationError("externalUserId must not be empty")
    if not external_game_id or not external_game_id.strip():
        raise ValidationError("externalGameId must not be empty")

    user = await get_external_user(db, external_user_id)
    if user is None:
        raise UnknownUser(f"Unknown external user {external_user_id}")
    game = await get_external_game(db, external_game_id)
    if game is None:
        raise UnknownGame(f"Unknown external game {external_game_id}")
    if not user.is_active:
        raise Disabled(f"External user {external_user_id} is disabled")
    if not game.is_active:
        raise Disabled(f"External game {external_game_id} is disabled")

    internal_game_id = await resolve_internal_game(db, external_game_id)
    config = _default_config()
    if internal_game_id is not None:
        internal = await db.get(InternalGame, internal_game_id)
        if internal is not None:
            if not internal.is_active:
                raise Disabled(f"Internal game {internal_game_id} is disabled")
            config = _config_from_game(internal)

    available = await count_active(db, config.game_type)
    if available == 0:
        raise QuestionsExhausted(f"No active {config.game_type} questions")
    question_count = min(config.question_count, available)
    if question_count < config.question_count:
        logger.warning(
            "question_count_capped",
            external_game_id=external_game_id,
            configured=config.question_count,
            available=available,
        )

    now = datetime.now(timezone.utc)
    session = GameSession(
        external_user_id=external_user_id,
        external_game_id=external_game_id,
        internal_game_id=internal_game_id,
        internal_user_id=await resolve_internal_user(db, external_user_id),
        status=SessionStatus.CREATED.value,
        score=0,
        credited_points=0,
        answered_count=0,
        question_count=question_count,
        issued_question_ids=[],
        created_at=now,
        updated_at=now,
    )
    db.add(session)
    await db.flush()

    if internal_game_id is None:
        logger.info(
            "session_unattributed",
            session_id=session.session_id,
            external_game_id=external_game_id,
            external_user_id=external_user_id,
        )
    else:
        logger.info("session_created", session_id=session.session_id, internal_game_id=internal_game_id)
    return session


async def get_session_state(db: AsyncSession, session_id: str) -> GameSession:
    """Session with its answer history. Stale sessions are expired on read."""
    session = await _load(db, session_id)
    now = datetime.now(timezone.utc)
    if _is_stale(session, now):
        async with session_locks.hold(session_id):
            session = await _load(db, session_id, for_update=True)
            if _is_stale(session, now):
                _expire(session, now)
                await db.commit()
                logger.info("session_expired", session_id=session_id, lazy=True)
    return session


async def next_question(
    db: AsyncSession,
    session_id: str,
    difficulty: int | None = None,
) -> tuple[GameSession, QuizQuestion]:
    """
    Issue the next question of a session.

    While a question is open it is returned again rather than replaced, so
    a client that lost the response can resume. Issued questions are never
    reissued within the same session.

    When the bank runs dry before question_count, a session with answers is
    completed at its current score and credited before QuestionsExhausted.
    """
    if difficulty is not None and not 1 <= difficulty <= 3:
        raise ValidationError("difficulty must be between 1 and 3")

    async with session_locks.hold(session_id):
        session = await _load(db, session_id, for_update=True)
        now = datetime.now(timezone.utc)
        await _ensure_open(db, session, now)

        if session.pending_question_id is not None:
            pending = await get_question(db, session.pending_question_id)
            if pending is not None:
                return session, pending

        config = await get_game_config(db, session.internal_game_id)
        question = await pick_question(
            db,
            config.game_type,
            difficulty if difficulty is not None else config.difficulty,
            list(session.issued_question_ids or []),
        )
        if question is None:
            if session.answered_count > 0:
                await _complete_short(db, session, now)
            raise QuestionsExhausted(f"No questions left for session {session_id}")

        session.issued_question_ids = [*(session.issued_question_ids or []), question.question_id]
        session.pending_question_id = question.question_id
        session.pending_issued_at = now
        session.updated_at = now
        await db.commit()

    logger.debug("question_issued", session_id=session_id, question_id=question.question_id)
    return session, question


async def _recorded_answer(db: AsyncSession, session_id: str, question_id: str) -> SessionAnswer | None:
    result = await db.execute(
        select(SessionAnswer).where(
            SessionAnswer.session_id == session_id,
            SessionAnswer.question_id == question_id,
        )
    )
    return result.scalar_one_or_none()


async def submit_answer(
    db: AsyncSession,
    redis: object,
    session_id: str,
    question_id: str,
    option_id: str,
    elapsed_seconds: float,
) -> AnswerOutcome:
    """
    Score an answer to the open question of a session.

    Raises:
        ValidationError: Empty ids or a negative elapsed time.
        SessionNotFound: Unknown session.
        AlreadyAnswered: The question was already answered; carries the
            recorded answer so the original result can be replayed.
        SessionTerminal: Session is completed or expired.
        UnknownQuestion: question_id is not the open question.
        UnknownOption: option_id is not one of the question's options.
    """
    if not question_id or not option_id:
        raise ValidationError("questionId and optionId must not be empty")
    if elapsed_seconds is None or math.isnan(elapsed_seconds) or elapsed_seconds < 0:
        raise ValidationError("elapsedSeconds must be a non-negative number")

    async with session_locks.hold(session_id):
        session = await _load(db, session_id, for_update=True)

        recorded = await _recorded_answer(db, session_id, question_id)
        if recorded is not None:
            raise AlreadyAnswered(recorded)

        now = datetime.now(timezone.utc)
        await _ensure_open(db, session, now)

        if session.pending_question_id != question_id:
            raise UnknownQuestion(f"Question {question_id} is not open in session {session_id}")
        question = await get_question(db, question_id)
        if question is None:
            raise UnknownQuestion(f"Question {question_id} no longer exists")
        if option_id not in option_ids(question):
            raise UnknownOption(f"Option {option_id} is not part of question {question_id}")

        config = await get_game_config(db, session.internal_game_id)
        is_correct = option_id == question.correct_option_id
        points = score(is_correct, elapsed_seconds, config.base_points, config.timer_duration)

        new_score = session.score + points
        answered = session.answered_count + 1
        completed = answered >= session.question_count
        if new_score < session.score:
            raise InvariantViolation(f"Session {session_id} score would decrease")

        if config.credit_policy is CreditPolicy.PER_ANSWER:
            credit = points
        elif completed:
            credit = new_score - session.credited_points
        else:
            credit = None

        values = {
            "score": new_score,
            "answered_count": answered,
            "pending_question_id": None,
            "pending_issued_at": None,
            "status": (SessionStatus.COMPLETED if completed else SessionStatus.IN_PROGRESS).value,
            "updated_at": now,
        }
        if completed:
            values["completed_at"] = now
        if credit is not None and session.internal_game_id is not None:
            values["credited_points"] = session.credited_points + credit

        # Compare-and-set: only the holder of the open question may advance the session.
        result = await db.execute(
            update(GameSession)
            .where(
                GameSession.session_id == session_id,
                GameSession.pending_question_id == question_id,
                GameSession.status.in_(OPEN_STATUSES),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            recorded = await _recorded_answer(db, session_id, question_id)
            if recorded is not None:
                raise AlreadyAnswered(recorded)
            raise UnknownQuestion(f"Question {question_id} is not open in session {session_id}")

        answer = SessionAnswer(
            session_id=session_id,
            question_id=question_id,
            option_id=option_id,
            correct_option_id=question.correct_option_id,
            is_correct=is_correct,
            points=points,
            elapsed_seconds=float(elapsed_seconds),
            answered_at=now,
        )
        db.add(answer)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            recorded = await _recorded_answer(db, session_id, question_id)
            if recorded is None:
                raise
            raise AlreadyAnswered(recorded) from None

        touched = []
        if credit is not None:
            touched = await record_points(db, session.external_user_id, session.internal_game_id, credit, at=now)

        await db.commit()
        session = await _load(db, session_id)

    logger.info(
        "answer_scored",
        session_id=session_id,
        question_id=question_id,
        is_correct=is_correct,
        points=points,
        score=session.score,
        completed=completed,
    )

    if completed:
        await publish(redis, CHANNEL_SESSION_COMPLETED, {
            "session_id": session_id,
            "external_user_id": session.external_user_id,
            "external_game_id": session.external_game_id,
            "internal_game_id": session.internal_game_id,
            "score": session.score,
        })
    for period, key in touched:
        await publish(redis, CHANNEL_LEADERBOARD_UPDATED, {
            "user_id": session.external_user_id,
            "game_id": session.internal_game_id,
            "period": period.value,
            "period_key": key,
            "delta": credit,
        })

    return AnswerOutcome(session=session, answer=answer, completed=completed)


async def expire_stale_sessions(
    db: AsyncSession,
    now: datetime | None = None,
    batch_size: int | None = None,
) -> int:
    """Move every idle open session to EXPIRED. Returns the number expired."""
    settings = get_settings()
    if now is None:
        now = datetime.now(timezone.utc)
    if batch_size is None:
        batch_size = settings.expiry_sweep_batch_size
    cutoff = now - timedelta(minutes=settings.session_ttl_minutes)

    expired = 0
    while True:
        result = await db.execute(
            select(GameSession.session_id)
            .where(GameSession.status.in_(OPEN_STATUSES), GameSession.updated_at < cutoff)
            .limit(batch_size)
        )
        ids = list(result.scalars())
        if not ids:
            break
        await db.execute(
            update(GameSession)
            .where(GameSession.session_id.in_(ids), GameSession.status.in_(OPEN_STATUSES))
            .values(
                status=SessionStatus.EXPIRED.value,
                pending_question_id=None,
                pending_issued_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        expired += len(ids)
        if len(ids) < batch_size:
            break

    if expired:
        logger.info("sessions_expired", count=expired, cutoff=cutoff.isoformat())
    return expired
