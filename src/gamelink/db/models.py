"""ORM models for the mapping, session, leaderboard and reward tables.

Column types use variants so the same metadata runs on PostgreSQL in
production and SQLite in tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gamelink.db.base import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
JSONType = JSON().with_variant(JSONB, "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Partner catalog (external identity space)
# ---------------------------------------------------------------------------


class ExternalGame(Base):
    """A game as known to the partner catalog. Immutable except is_active."""

    __tablename__ = "external_games"

    external_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    link: Mapped[GameLink | None] = relationship("GameLink", back_populates="external_game", uselist=False)


class ExternalUser(Base):
    """A partner-platform user."""

    __tablename__ = "external_users"

    external_user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Local platform (internal identity space)
# ---------------------------------------------------------------------------


class InternalGame(Base):
    """A game as configured by an operator."""

    __tablename__ = "internal_games"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    game_type: Mapped[str] = mapped_column(String(16), nullable=False, default="books", server_default="books")
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    timer_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=30, server_default="30")
    question_count: Mapped[int] = mapped_column(Integer, nullable=False, default=10, server_default="10")
    base_points: Mapped[int] = mapped_column(Integer, nullable=False, default=10, server_default="10")
    weekly_leaderboard: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    monthly_leaderboard: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    credit_policy: Mapped[str] = mapped_column(
        String(16), nullable=False, default="on_completion", server_default="on_completion",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------


class GameLink(Base):
    """Mapping between an external game and at most one internal game.

    The row can exist half-linked (internal_id NULL) when the catalog sync
    runs before an operator links it. The UNIQUE on internal_id keeps one
    internal game from backing two external games.
    """

    __tablename__ = "game_links"

    external_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("external_games.external_id", ondelete="CASCADE"), primary_key=True,
    )
    internal_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("internal_games.id", ondelete="SET NULL"), nullable=True, unique=True,
    )
    linked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    external_game: Mapped[ExternalGame] = relationship("ExternalGame", back_populates="link")


class UserLink(Base):
    """Mapping between an external user and at most one internal user."""

    __tablename__ = "user_links"

    external_user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("external_users.external_user_id", ondelete="CASCADE"), primary_key=True,
    )
    internal_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, unique=True)
    linked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Quiz sessions
# ---------------------------------------------------------------------------


class QuizQuestion(Base):
    """Question bank entry. Options are an ordered list of dicts with an 'id'."""

    __tablename__ = "quiz_questions"
    __table_args__ = (
        Index("idx_quiz_questions_type_difficulty", "game_type", "difficulty"),
    )

    question_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    game_type: Mapped[str] = mapped_column(String(16), nullable=False)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    snippet: Mapped[str | None] = mapped_column(Text, nullable=True)
    options: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)
    correct_option_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())


class GameSession(Base):
    """One quiz attempt by an external user on an external game."""

    __tablename__ = "game_sessions"
    __table_args__ = (
        Index("idx_game_sessions_status_updated", "status", "updated_at"),
        Index("idx_game_sessions_user", "external_user_id"),
    )

    session_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    external_user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("external_users.external_user_id"), nullable=False,
    )
    external_game_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("external_games.external_id"), nullable=False,
    )
    internal_game_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    internal_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="created", server_default="created")
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    credited_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    answered_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    question_count: Mapped[int] = mapped_column(Integer, nullable=False)
    issued_question_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    pending_question_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    pending_issued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    answers: Mapped[list[SessionAnswer]] = relationship(
        "SessionAnswer", order_by="SessionAnswer.id", lazy="selectin",
    )


class SessionAnswer(Base):
    """Append-only answer history. One row per (session, question)."""

    __tablename__ = "session_answers"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_session_answers_session_question"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("game_sessions.session_id", ondelete="CASCADE"), nullable=False,
    )
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)
    option_id: Mapped[str] = mapped_column(String(64), nullable=False)
    correct_option_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    elapsed_seconds: Mapped[float] = mapped_column(Float, nullable=False)
    answered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------


class LeaderboardEntry(Base):
    """Aggregated points for (user, internal game, period, window)."""

    __tablename__ = "leaderboard_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "game_id", "period", "period_key", name="uq_leaderboard_user_game_window"),
        Index("idx_leaderboard_ranking", "game_id", "period", "period_key", "points"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    game_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    period_key: Mapped[str] = mapped_column(String(16), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------


class Reward(Base):
    """A prize definition. available is the remaining stock."""

    __tablename__ = "rewards"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    value: Mapped[str] = mapped_column(String(255), nullable=False)
    required_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    available: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class RewardGame(Base):
    """Attaches a reward to the leaderboard of one game and period."""

    __tablename__ = "reward_games"
    __table_args__ = (
        UniqueConstraint("reward_id", "game_id", "period", name="uq_reward_games_reward_game_period"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    reward_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("rewards.id", ondelete="CASCADE"), nullable=False)
    game_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("internal_games.id", ondelete="CASCADE"), nullable=False,
    )
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    reward: Mapped[Reward] = relationship("Reward", lazy="joined")


class RewardClaim(Base):
    """A fulfilled reward. Written once, never updated or deleted."""

    __tablename__ = "reward_claims"
    __table_args__ = (
        UniqueConstraint("user_id", "reward_id", "period", "period_key", name="uq_reward_claims_user_reward_window"),
        Index("idx_reward_claims_user_game", "user_id", "game_id", "period", "period_key"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reward_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("rewards.id"), nullable=False)
    game_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    period_key: Mapped[str] = mapped_column(String(16), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reward: Mapped[Reward] = relationship("Reward", lazy="joined")
