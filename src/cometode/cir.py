"""CIR (Coding Interview Repetition) scheduling.

A spaced repetition algorithm tuned for coding interview preparation.
Compared to SM-2:

- intervals are capped at 28 days
- intervals are weighted by problem difficulty (Easy 1.1x / Hard 0.9x)
- successes follow a doubling progression (1, 2, 4, 8, 16, 28)
- a running success rate below 80% shortens intervals
- interview mode halves every interval

Quality ratings: 0 Again (forgot), 1 Hard, 2 Good, 3 Easy.

すべて純粋関数。日付は呼び出し側から注入でき、未指定ならローカル日付を使う。
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from .errors import InvalidDifficultyError
from .models.common import Difficulty, Quality

MAX_INTERVAL_DAYS = 28
MIN_INTERVAL_DAYS = 1
BASE_INTERVALS = (1, 2, 4, 8, 16, 28)
DIFFICULTY_MULTIPLIERS: Dict[Difficulty, float] = {
    Difficulty.easy: 1.1,
    Difficulty.medium: 1.0,
    Difficulty.hard: 0.9,
}
SUCCESS_RATE_THRESHOLD = 0.8
SUCCESS_RATE_PENALTY = 0.8
INTERVIEW_MODE_MULTIPLIER = 0.5
EASY_BONUS_MULTIPLIER = 1.15
HARD_SETBACK_MULTIPLIER = 0.5
MIN_EASE_FACTOR = 1.3

INITIAL_EASE_FACTOR = 2.5
INITIAL_SUCCESS_RATE = 0.5

QUALITY_LABELS: Dict[Quality, str] = {
    Quality.again: "Again",
    Quality.hard: "Hard",
    Quality.good: "Good",
    Quality.easy: "Easy",
}
QUALITY_DESCRIPTIONS: Dict[Quality, str] = {
    Quality.again: "Forgot completely",
    Quality.hard: "Struggled, needs more practice",
    Quality.good: "Solved with some hesitation",
    Quality.easy: "Solved fluently",
}


@dataclass(frozen=True)
class CIRState:
    consecutive_successes: int = 0
    interval: int = 0
    ease_factor: float = INITIAL_EASE_FACTOR
    success_rate: float = INITIAL_SUCCESS_RATE
    total_reviews: int = 0


@dataclass(frozen=True)
class CIRResult:
    new_state: CIRState
    next_review_date: date
    quality: Quality


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def coerce_difficulty(value: Any) -> Difficulty:
    if isinstance(value, Difficulty):
        return value
    try:
        return Difficulty(value)
    except (ValueError, TypeError) as exc:
        raise InvalidDifficultyError(value) from exc


def difficulty_multiplier(difficulty: Any) -> float:
    return DIFFICULTY_MULTIPLIERS[coerce_difficulty(difficulty)]


def clamp_quality(quality: float) -> Quality:
    """Clamp an arbitrary rating into Again..Easy.

    範囲外の値はエラーにせず丸めて 0..3 に収める（UI 側で既に制限済みのため）。
    """
    q = float(quality)
    if math.isnan(q):
        q = 0.0
    q = max(0.0, min(3.0, q))
    return Quality(round_half_up(q))


def get_base_interval(consecutive_successes: int) -> int:
    index = min(max(consecutive_successes, 0), len(BASE_INTERVALS) - 1)
    return BASE_INTERVALS[index]


def calculate_next_review(
    current_state: CIRState,
    quality: float,
    difficulty: Any,
    interview_mode: bool = False,
    today: Optional[date] = None,
) -> CIRResult:
    """Compute the next CIR state and review date.

    The order of the steps matters: the difficulty multiplier and easy bonus
    are rounded individually, then the success-rate penalty, then interview
    mode, then the final [1, 28] clamp.

    Raises InvalidDifficultyError when difficulty is not Easy/Medium/Hard.
    """
    multiplier = difficulty_multiplier(difficulty)
    q = clamp_quality(quality)

    total_reviews = current_state.total_reviews
    new_total_reviews = total_reviews + 1
    is_success = q >= Quality.good
    success_count = current_state.success_rate * total_reviews + (1 if is_success else 0)
    new_success_rate = min(1.0, max(0.0, success_count / new_total_reviews))

    ease_factor = current_state.ease_factor
    if q == Quality.again:
        new_consecutive_successes = 0
        new_interval = 1
        new_ease_factor = max(MIN_EASE_FACTOR, ease_factor - 0.1)
    elif q == Quality.hard:
        new_consecutive_successes = 0
        new_interval = max(1, round_half_up(current_state.interval * HARD_SETBACK_MULTIPLIER))
        new_ease_factor = max(MIN_EASE_FACTOR, ease_factor - 0.05)
    else:
        new_consecutive_successes = current_state.consecutive_successes + 1
        base_interval = get_base_interval(new_consecutive_successes)
        new_interval = round_half_up(base_interval * multiplier)
        if q == Quality.easy:
            new_interval = round_half_up(new_interval * EASY_BONUS_MULTIPLIER)
        # Good/Easy map to SM-2's 4/5 for the ease adjustment
        adjusted_q = int(q) + 2
        new_ease_factor = max(
            MIN_EASE_FACTOR,
            ease_factor + (0.1 - (5 - adjusted_q) * (0.08 + (5 - adjusted_q) * 0.02)),
        )

    # penalty applies only to successful reviews
    if new_success_rate < SUCCESS_RATE_THRESHOLD and is_success:
        new_interval = max(1, round_half_up(new_interval * SUCCESS_RATE_PENALTY))

    if interview_mode:
        new_interval = max(1, round_half_up(new_interval * INTERVIEW_MODE_MULTIPLIER))

    new_interval = min(MAX_INTERVAL_DAYS, new_interval)
    new_interval = max(MIN_INTERVAL_DAYS, new_interval)

    return CIRResult(
        new_state=CIRState(
            consecutive_successes=new_consecutive_successes,
            interval=new_interval,
            ease_factor=new_ease_factor,
            success_rate=new_success_rate,
            total_reviews=new_total_reviews,
        ),
        next_review_date=get_next_review_date(new_interval, today=today),
        quality=q,
    )


def get_next_review_date(interval_days: int, today: Optional[date] = None) -> date:
    base = today if today is not None else date.today()
    if isinstance(base, datetime):
        base = base.date()
    return base + timedelta(days=interval_days)


def _to_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def is_review_due(next_review_date: date | datetime | str | None, today: Optional[date] = None) -> bool:
    """True if a review date is set and falls on or before today."""
    if not next_review_date:
        return False
    current = today if today is not None else date.today()
    return _to_date(next_review_date) <= _to_date(current)


def format_review_date(value: date | datetime) -> str:
    """Return ``YYYY-MM-DD`` for the local calendar day."""
    return _to_date(value).isoformat()


def get_quality_label(quality: int) -> str:
    try:
        return QUALITY_LABELS[Quality(quality)]
    except ValueError:
        return "Unknown"


def get_quality_description(quality: int) -> str:
    try:
        return QUALITY_DESCRIPTIONS[Quality(quality)]
    except ValueError:
        return ""


def get_interval_previews(
    current_state: CIRState,
    difficulty: Any,
    interview_mode: bool = False,
    today: Optional[date] = None,
) -> Dict[Quality, int]:
    """Interval (days) each rating would produce, without committing anything."""
    return {
        q: calculate_next_review(current_state, q, difficulty, interview_mode, today=today).new_state.interval
        for q in Quality
    }
