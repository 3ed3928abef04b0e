from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional

from .cir import CIRResult, calculate_next_review, get_interval_previews
from .config import settings
from .errors import ProblemNotFoundError
from .logging import logger
from .models.common import ProblemSet, Quality
from .models.problem import Problem
from .models.progress import DueProblem, ProgressRecord, ProgressStats
from .store import ProgressStore

INTERVIEW_MODE_KEY = "interview_mode"


@dataclass(frozen=True)
class ReviewOutcome:
    problem: Problem
    before: ProgressRecord
    after: ProgressRecord
    result: CIRResult


class ReviewService:
    """Review flow on top of an initialized ProgressStore.

    UI 層が必要とする操作（復習対象・プレビュー・採点・集計）だけを公開し、
    スケジューリングの計算式は cir モジュールに閉じ込める。
    """

    def __init__(self, store: ProgressStore, default_interview_mode: Optional[bool] = None) -> None:
        self.store = store
        self.default_interview_mode = (
            settings.interview_mode if default_interview_mode is None else default_interview_mode
        )

    # --- interview mode preference ---
    @property
    def interview_mode(self) -> bool:
        raw = self.store.get_preference(INTERVIEW_MODE_KEY)
        if raw is None:
            return self.default_interview_mode
        return raw.strip().lower() == "true"

    def set_interview_mode(self, enabled: bool) -> None:
        self.store.set_preference(INTERVIEW_MODE_KEY, "true" if enabled else "false")
        logger.info("interview_mode_changed", enabled=enabled)

    # --- queries ---
    def require_problem(self, neet_id: int) -> Problem:
        problem = self.store.get_problem(neet_id)
        if problem is None:
            raise ProblemNotFoundError(neet_id)
        return problem

    def progress(self, neet_id: int) -> ProgressRecord:
        self.require_problem(neet_id)
        return self.store.get_progress(neet_id) or ProgressRecord.initial(neet_id)

    def due(
        self,
        today: Optional[date] = None,
        problem_set: ProblemSet | str | None = None,
        limit: Optional[int] = None,
    ) -> List[DueProblem]:
        return self.store.list_due(
            today or date.today(),
            problem_set=problem_set,
            limit=settings.due_limit if limit is None else limit,
        )

    def preview(self, neet_id: int, today: Optional[date] = None) -> Dict[Quality, int]:
        problem = self.require_problem(neet_id)
        current = self.store.get_progress(neet_id) or ProgressRecord.initial(neet_id)
        return get_interval_previews(
            current.to_state(), problem.difficulty, self.interview_mode, today=today
        )

    def stats(self, today: Optional[date] = None, problem_set: ProblemSet | str | None = None) -> ProgressStats:
        return self.store.get_stats(today or date.today(), problem_set=problem_set)

    # --- review ---
    def review(
        self,
        neet_id: int,
        quality: float,
        today: Optional[date] = None,
        reviewed_at: Optional[datetime] = None,
    ) -> ReviewOutcome:
        """Grade one problem and persist the next schedule."""
        problem = self.require_problem(neet_id)
        before = self.store.get_progress(neet_id) or ProgressRecord.initial(neet_id)
        result = calculate_next_review(
            before.to_state(),
            quality,
            problem.difficulty,
            interview_mode=self.interview_mode,
            today=today,
        )
        after = self.store.record_review(neet_id, result, reviewed_at=reviewed_at)
        return ReviewOutcome(problem=problem, before=before, after=after, result=result)
