"""Closed variants shared by the ORM, services and API schemas."""

from __future__ import annotations

from enum import Enum


class GameType(str, Enum):
    BOOKS = "books"
    AUTHORS = "authors"
    YEARS = "years"


class Period(str, Enum):
    ALL_TIME = "all_time"
    MONTHLY = "monthly"
    WEEKLY = "weekly"


class SessionStatus(str, Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.EXPIRED)


class CreditPolicy(str, Enum):
    """When session points reach the leaderboard."""

    ON_COMPLETION = "on_completion"
    PER_ANSWER = "per_answer"
