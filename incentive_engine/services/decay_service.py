"""
Skill Sprint prize decay.

Pure functions: the prize shrinks by an equal share per day from assignment
towards the due date, never below one day's share, and drops to zero one full
day after the due date. Nothing here raises for any numeric input.
"""
import math
from datetime import datetime
from typing import Optional

from incentive_engine.constants import DAY_MS
from incentive_engine.services.date_service import DateService


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero"""
    if not math.isfinite(value):
        return 0
    magnitude = math.floor(abs(value) + 0.5)
    return int(magnitude if value >= 0 else -magnitude)


def _clean_prize(initial_prize) -> float:
    try:
        prize = float(initial_prize if initial_prize is not None else 0)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(prize):
        return 0.0
    return max(0.0, prize)


def _window_ms(assigned_at: Optional[datetime], due_at: Optional[datetime]):
    """(assigned_ms, due_ms) or None when the window is missing or inverted"""
    assigned_ms = DateService.to_ms(assigned_at)
    due_ms = DateService.to_ms(due_at)
    if assigned_ms is None or due_ms is None or due_ms <= assigned_ms:
        return None
    return assigned_ms, due_ms


def duration_days(assigned_at: Optional[datetime], due_at: Optional[datetime]) -> int:
    """Sprint length in days, rounded up, at least 1"""
    window = _window_ms(assigned_at, due_at)
    if window is None:
        return 1
    assigned_ms, due_ms = window
    return max(1, math.ceil((due_ms - assigned_ms) / DAY_MS))


def prize_drop_per_day(
    initial_prize,
    assigned_at: Optional[datetime],
    due_at: Optional[datetime]
) -> float:
    initial = _clean_prize(initial_prize)
    if initial <= 0:
        return 0.0
    return initial / duration_days(assigned_at, due_at)


def prize_now(
    initial_prize,
    assigned_at: Optional[datetime],
    due_at: Optional[datetime],
    now: datetime
) -> int:
    """
    Present value of a decaying sprint prize.

    Args:
        initial_prize: Prize at assignment time (negative/non-finite treated as 0)
        assigned_at: Assignment time (naive UTC) or None
        due_at: Due time (naive UTC) or None
        now: Reference time (naive UTC)

    Returns:
        Whole points awardable at `now`
    """
    initial = _clean_prize(initial_prize)
    if initial <= 0:
        return 0

    now_ms = DateService.to_ms(now)
    due_ms = DateService.to_ms(due_at)
    window = _window_ms(assigned_at, due_at)

    if window is None:
        # No usable window: flat prize until the grace day after a known due date
        if due_ms is not None and now_ms >= due_ms + DAY_MS:
            return 0
        return round_half_away(initial)

    assigned_ms, due_ms = window
    if now_ms >= due_ms + DAY_MS:
        return 0

    days = max(1, math.ceil((due_ms - assigned_ms) / DAY_MS))
    daily_drop = initial / days
    bounded_now = min(now_ms, due_ms)
    elapsed_days = max(0, math.floor((bounded_now - assigned_ms) / DAY_MS))
    charged_decay_days = min(days - 1, elapsed_days)
    value = initial - charged_decay_days * daily_drop
    return max(round_half_away(daily_drop), round_half_away(value))


def pool_dropped(
    initial_prize,
    assigned_at: Optional[datetime],
    due_at: Optional[datetime],
    now: datetime
) -> int:
    """Points of the prize already lost to decay"""
    initial = round_half_away(_clean_prize(initial_prize))
    current = prize_now(initial, assigned_at, due_at, now)
    return max(0, initial - current)


def points_lost_to_penalties(charged_days, penalty_per_day) -> int:
    """Total penalty points charged so far for an assignment"""
    days = max(0, charged_days or 0)
    per_day = max(0, penalty_per_day or 0)
    return round_half_away(days * per_day)
