"""Domain error taxonomy.

Every failure the engine surfaces is one of five kinds. Routers never catch
these; the global handler in ``gamelink.middleware.error_handler`` renders
them with the status code declared on the class.
"""

from __future__ import annotations

from typing import Any


class GameLinkError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    code = "error"

    def __init__(self, message: str = "", **context: Any) -> None:  # noqa: ANN401
        if not message:
            message = (self.__class__.__doc__ or self.code).strip().splitlines()[0]
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(GameLinkError, ValueError):
    """Malformed input, rejected before any state change."""

    status_code = 400
    code = "validation_error"


class NotFoundError(GameLinkError):
    """Referenced entity does not exist."""

    status_code = 404
    code = "not_found"


class ConflictError(GameLinkError):
    """Request conflicts with the current state."""

    status_code = 409
    code = "conflict"


class TransientStorageError(GameLinkError):
    """Storage timed out or is unavailable. Safe to retry."""

    status_code = 503
    code = "storage_unavailable"


class InvariantViolation(GameLinkError):
    """Operation would break a uniqueness or monotonicity guarantee."""

    status_code = 500
    code = "invariant_violation"


# --- Validation ---


class UnknownUser(ValidationError):
    """External user is not known to the catalog."""

    code = "unknown_user"


class UnknownGame(ValidationError):
    """External game is not known to the catalog."""

    code = "unknown_game"


class UnknownOption(ValidationError):
    """Option does not belong to the question."""

    code = "unknown_option"


# --- Not found ---


class SessionNotFound(NotFoundError):
    """Session not found."""

    code = "session_not_found"


class MappingNotFound(NotFoundError):
    """No mapping exists for this id."""

    code = "mapping_not_found"


class NoRewardAvailable(NotFoundError):
    """No reward is available for this rank."""

    code = "no_reward_available"


# --- Conflicts ---


class AlreadyLinked(ConflictError):
    """One side of the link already has a counterpart."""

    code = "already_linked"


class Disabled(ConflictError):
    """Game or user is disabled."""

    code = "disabled"


class SessionTerminal(ConflictError):
    """Session is completed or expired."""

    code = "session_terminal"


class UnknownQuestion(ConflictError):
    """Question is not the open question for this session."""

    code = "unknown_question"


class QuestionsExhausted(ConflictError):
    """No unissued questions remain for this session."""

    code = "questions_exhausted"


class AlreadyAnswered(ConflictError):
    """Question was already answered in this session.

    Carries the recorded answer so callers can replay the original result.
    """

    code = "already_answered"

    def __init__(self, answer: Any, message: str = "") -> None:  # noqa: ANN401
        super().__init__(message or "Question was already answered in this session")
        self.answer = answer
