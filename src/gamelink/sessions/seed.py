"""Question bank seed, loaded from question_bank.json shipped with the package."""

from __future__ import annotations

import json
import logging
from importlib import resources
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from gamelink.db.models import QuizQuestion
from gamelink.enums import GameType
from gamelink.storage import insert_for

logger = logging.getLogger(__name__)


def load_question_bank() -> list[dict[str, Any]]:
    """Flatten the bundled bank into rows, tagging each with its game type."""
    raw = json.loads(resources.files("gamelink.sessions").joinpath("question_bank.json").read_text("utf-8"))
    rows: list[dict[str, Any]] = []
    for game_type, questions in raw.items():
        GameType(game_type)
        for question in questions:
            rows.append({**question, "game_type": game_type, "is_active": True})
    return rows


async def seed_questions(db: AsyncSession, rows: list[dict[str, Any]] | None = None) -> int:
    """Upsert question bank rows. Returns number of questions seeded."""
    if rows is None:
        rows = load_question_bank()

    seeded = 0
    for row in rows:
        stmt = insert_for(db, QuizQuestion).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["question_id"],
            set_={
                "game_type": stmt.excluded.game_type,
                "difficulty": stmt.excluded.difficulty,
                "prompt": stmt.excluded.prompt,
                "snippet": stmt.excluded.snippet,
                "options": stmt.excluded.options,
                "correct_option_id": stmt.excluded.correct_option_id,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d quiz questions", seeded)
    return seeded
