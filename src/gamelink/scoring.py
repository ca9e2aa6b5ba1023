"""Answer scoring formula.

points = round(base_points * max(0, 1 - elapsed / time_limit)), with a floor
of 1 for any correct answer and 0 for any incorrect one. Pure: no storage,
no clock.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

MIN_CORRECT_POINTS = 1


def time_factor(elapsed_seconds: float, time_limit_seconds: float) -> float:
    """Fraction of the time budget left, clamped to [0, 1].

    A non-positive time limit means the game is untimed.
    """
    if time_limit_seconds <= 0:
        return 1.0
    elapsed = max(0.0, float(elapsed_seconds))
    return max(0.0, 1.0 - elapsed / float(time_limit_seconds))


def score(
    is_correct: bool,
    elapsed_seconds: float,
    base_points: int,
    time_limit_seconds: float,
) -> int:
    """Points for one answer."""
    if not is_correct:
        return 0
    raw = Decimal(str(base_points)) * Decimal(str(time_factor(elapsed_seconds, time_limit_seconds)))
    points = int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(MIN_CORRECT_POINTS, points)
