"""Pydantic models for quiz session endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from gamelink.schemas import ApiModel


class SessionCreateRequest(ApiModel):
    external_user_id: str
    external_game_id: str


class AnswerRecord(ApiModel):
    question_id: str
    option_id: str
    is_correct: bool
    points: int
    elapsed_seconds: float
    answered_at: datetime


class SessionResponse(ApiModel):
    session_id: str
    external_user_id: str
    external_game_id: str
    internal_game_id: int | None = None
    status: str
    score: int
    answered_count: int
    question_count: int
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    answers: list[AnswerRecord] = []


class QuestionResponse(ApiModel):
    session_id: str
    question_id: str
    prompt: str
    snippet: str | None = None
    options: list[dict[str, Any]]
    difficulty: int
    time_limit_seconds: int
    question_number: int
    question_count: int


class AnswerRequest(ApiModel):
    question_id: str
    option_id: str
    elapsed_seconds: float


class AnswerResponse(ApiModel):
    is_correct: bool
    points: int
    correct_answer: str | None = None
    session_score: int
    answered_count: int
    question_count: int
    completed: bool
    replayed: bool = False
