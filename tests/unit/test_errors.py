"""Unit tests for the domain error taxonomy."""

import pytest

from gamelink.errors import (
    AlreadyAnswered,
    AlreadyLinked,
    ConflictError,
    Disabled,
    GameLinkError,
    InvariantViolation,
    MappingNotFound,
    NoRewardAvailable,
    NotFoundError,
    QuestionsExhausted,
    SessionNotFound,
    SessionTerminal,
    TransientStorageError,
    UnknownGame,
    UnknownOption,
    UnknownQuestion,
    UnknownUser,
    ValidationError,
)


@pytest.mark.parametrize(
    ("error", "base", "status"),
    [
        (UnknownUser, ValidationError, 400),
        (UnknownGame, ValidationError, 400),
        (UnknownOption, ValidationError, 400),
        (SessionNotFound, NotFoundError, 404),
        (MappingNotFound, NotFoundError, 404),
        (NoRewardAvailable, NotFoundError, 404),
        (AlreadyLinked, ConflictError, 409),
        (Disabled, ConflictError, 409),
        (SessionTerminal, ConflictError, 409),
        (UnknownQuestion, ConflictError, 409),
        (QuestionsExhausted, ConflictError, 409),
        (TransientStorageError, GameLinkError, 503),
        (InvariantViolation, GameLinkError, 500),
    ],
)
def test_error_kinds_and_status(error, base, status):
    exc = error()
    assert isinstance(exc, base)
    assert exc.status_code == status


def test_default_message_is_first_docstring_line():
    assert SessionNotFound().message == "Session not found."
    assert str(AlreadyLinked()) == "One side of the link already has a counterpart."


def test_explicit_message_and_context():
    exc = UnknownUser("Unknown external user u-9", external_user_id="u-9")
    assert exc.message == "Unknown external user u-9"
    assert exc.context == {"external_user_id": "u-9"}


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        raise ValidationError("bad input")


def test_already_answered_carries_the_recorded_answer():
    recorded = object()
    exc = AlreadyAnswered(recorded)
    assert exc.answer is recorded
    assert exc.status_code == 409
    assert exc.code == "already_answered"
