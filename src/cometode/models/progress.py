from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field, computed_field

from ..cir import CIRState, INITIAL_EASE_FACTOR, INITIAL_SUCCESS_RATE, round_half_up
from .common import ProgressStatus
from .problem import Problem


class ProgressRecord(BaseModel):
    """Per-problem scheduling state as persisted in ``problem_progress``."""

    neet_id: int
    status: ProgressStatus = ProgressStatus.new
    consecutive_successes: int = Field(default=0, ge=0)
    interval: int = Field(default=0, ge=0)
    ease_factor: float = INITIAL_EASE_FACTOR
    success_rate: float = Field(default=INITIAL_SUCCESS_RATE, ge=0.0, le=1.0)
    total_reviews: int = Field(default=0, ge=0)
    next_review_date: date | None = None
    first_learned_at: datetime | None = None
    last_reviewed_at: datetime | None = None

    @classmethod
    def initial(cls, neet_id: int) -> "ProgressRecord":
        return cls(neet_id=neet_id)

    def to_state(self) -> CIRState:
        return CIRState(
            consecutive_successes=self.consecutive_successes,
            interval=self.interval,
            ease_factor=self.ease_factor,
            success_rate=self.success_rate,
            total_reviews=self.total_reviews,
        )


class HistoryEntry(BaseModel):
    """One append-only row of ``review_history``."""

    id: int
    neet_id: int
    review_date: datetime
    quality: int = Field(ge=0, le=3)
    interval_before: int | None = None
    interval_after: int | None = None
    ease_factor_before: float | None = None
    ease_factor_after: float | None = None


class DueProblem(BaseModel):
    """A problem joined with its progress, as listed for review."""

    problem: Problem
    progress: ProgressRecord


class ProgressStats(BaseModel):
    """進捗の見える化 用の集計（読み取り専用）。

    - total: 対象問題数
    - practiced: 一度でもレビューした問題数
    - due_today: 今日時点で復習すべき件数
    - completion_percentage: practiced / total の百分率（total=0 なら 0）
    """

    total: int
    practiced: int
    new: int
    learning: int
    reviewing: int
    due_today: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def completion_percentage(self) -> int:
        if self.total <= 0:
            return 0
        return round_half_up(self.practiced / self.total * 100)
