from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence

from . import migrations
from .cir import CIRResult, format_review_date
from .errors import MigrationError, NotInitializedError, ProblemNotFoundError, StoreError
from .logging import logger
from .models.common import ProblemSet, ProgressStatus
from .models.problem import Problem
from .models.progress import DueProblem, HistoryEntry, ProgressRecord, ProgressStats
from .schema import SCHEMA_STATEMENTS, transaction, upsert_problems

# total_reviews がこの値以上で status=reviewing とみなす
REVIEWING_MIN_REVIEWS = 3

# SQLite CURRENT_TIMESTAMP と同じ形式（UTC、区切りは空白）
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_PROBLEM_COLUMNS = (
    "p.neet_id AS neet_id, p.title AS title, p.difficulty AS difficulty, "
    "p.categories AS categories, p.tags AS tags, p.leetcode_url AS leetcode_url, "
    "p.neetcode_url AS neetcode_url, p.in_neetcode_150 AS in_neetcode_150, p.in_google AS in_google"
)
_PROGRESS_COLUMNS = (
    "pp.status AS status, pp.consecutive_successes AS consecutive_successes, "
    "pp.interval AS interval, pp.ease_factor AS ease_factor, pp.success_rate AS success_rate, "
    "pp.total_reviews AS total_reviews, pp.next_review_date AS next_review_date, "
    "pp.first_learned_at AS first_learned_at, pp.last_reviewed_at AS last_reviewed_at"
)


def status_for_reviews(total_reviews: int) -> ProgressStatus:
    """Advisory status derived from the review count."""
    if total_reviews <= 0:
        return ProgressStatus.new
    if total_reviews < REVIEWING_MIN_REVIEWS:
        return ProgressStatus.learning
    return ProgressStatus.reviewing


def _due_bound(today: date) -> str:
    return format_review_date(today + timedelta(days=1))


def to_db_timestamp(value: datetime) -> str:
    """Render a review time the way legacy rows store it (naive UTC)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)


def _problem_set_clause(problem_set: ProblemSet | str | None) -> str:
    ps = ProblemSet(problem_set) if problem_set is not None else ProblemSet.all
    if ps is ProblemSet.neetcode150:
        return " AND p.in_neetcode_150 = 1"
    if ps is ProblemSet.google:
        return " AND p.in_google = 1"
    return ""


def due_query(problem_set: ProblemSet | str | None = None) -> str:
    """SELECT for due problems, pinned to idx_progress_next_review.

    The single parameter is the exclusive upper bound (the day after "today"),
    so a stored value with a time suffix on the due day still matches.
    """
    return f"""
        SELECT {_PROBLEM_COLUMNS}, {_PROGRESS_COLUMNS}
        FROM problem_progress AS pp INDEXED BY idx_progress_next_review
        JOIN problems AS p ON p.id = pp.problem_id
        WHERE pp.next_review_date IS NOT NULL AND pp.next_review_date < ?{_problem_set_clause(problem_set)}
        ORDER BY pp.next_review_date ASC, p.neet_id ASC
    """


def status_query() -> str:
    """SELECT for progress rows by status, pinned to idx_progress_status."""
    return f"""
        SELECT p.neet_id AS neet_id, {_PROGRESS_COLUMNS}
        FROM problem_progress AS pp INDEXED BY idx_progress_status
        JOIN problems AS p ON p.id = pp.problem_id
        WHERE pp.status = ?
        ORDER BY p.neet_id ASC
    """


def _row_to_problem(row: sqlite3.Row) -> Problem:
    return Problem(
        neet_id=int(row["neet_id"]),
        title=row["title"],
        difficulty=row["difficulty"],
        categories=json.loads(row["categories"] or "[]"),
        tags=json.loads(row["tags"] or "[]"),
        leetcode_url=row["leetcode_url"] or "",
        neetcode_url=row["neetcode_url"] or "",
        in_neetcode_150=bool(row["in_neetcode_150"]),
        in_google=bool(row["in_google"]),
    )


def _row_to_progress(row: sqlite3.Row) -> ProgressRecord:
    # 旧バージョン由来の行は NULL を含みうるため既定値で補う
    next_review = row["next_review_date"]
    return ProgressRecord(
        neet_id=int(row["neet_id"]),
        status=row["status"] or ProgressStatus.new.value,
        consecutive_successes=int(row["consecutive_successes"] or 0),
        interval=int(row["interval"] or 0),
        ease_factor=float(row["ease_factor"]) if row["ease_factor"] is not None else 2.5,
        success_rate=float(row["success_rate"]) if row["success_rate"] is not None else 0.5,
        total_reviews=int(row["total_reviews"] or 0),
        next_review_date=str(next_review)[:10] if next_review else None,
        first_learned_at=row["first_learned_at"] or None,
        last_reviewed_at=row["last_reviewed_at"] or None,
    )


class ProgressStore:
    """SQLite-backed progress store for CIR scheduling state.

    - one row per problem in problem_progress, written only from engine output
    - review_history is append-only; each review adds exactly one row
    - progress and history are written in one transaction
    - schema migrations run inside initialize(); nothing else works before it

    The handle is owned explicitly: create it, call initialize() (or use it as a
    context manager), and close() it when done.
    """

    def __init__(self, db_path: str, catalog: Iterable[Problem] = ()) -> None:
        self.db_path = db_path
        self._catalog: List[Problem] = list(catalog)
        self._conn: Optional[sqlite3.Connection] = None

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    def _ensure_dirs(self) -> None:
        if self.db_path == ":memory:":
            return
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _require(self, operation: str) -> sqlite3.Connection:
        if self._conn is None:
            raise NotInitializedError(operation)
        return self._conn

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    # --- lifecycle ---
    def initialize(self) -> "ProgressStore":
        """Open the database, create or migrate the schema, seed if empty.

        Calling it again on an open store is a no-op. Raises MigrationError
        if any step fails; the store is then left closed.
        """
        if self._conn is not None:
            return self

        self._ensure_dirs()
        conn = self._connect()
        try:
            try:
                with transaction(conn):
                    for stmt in SCHEMA_STATEMENTS:
                        conn.execute(stmt)
            except sqlite3.Error as exc:
                logger.error("migration_failed", step="create_schema", error=repr(exc))
                raise MigrationError("create_schema", exc) from exc

            applied = migrations.run_migrations(conn, self._catalog)

            seeded = 0
            row = conn.execute("SELECT COUNT(1) AS c FROM problems;").fetchone()
            if int(row["c"]) == 0 and self._catalog:
                try:
                    with transaction(conn):
                        seeded = upsert_problems(conn, self._catalog)
                except sqlite3.Error as exc:
                    raise MigrationError("seed_catalog", exc) from exc
                logger.info("catalog_seeded", count=seeded)
        except BaseException:
            conn.close()
            raise

        self._conn = conn
        logger.info("store_initialized", db_path=self.db_path, applied_migrations=applied, seeded=seeded)
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("store_closed", db_path=self.db_path)

    def __enter__(self) -> "ProgressStore":
        return self.initialize()

    def __exit__(self, *exc_info) -> None:
        self.close()

    # --- catalog ---
    def upsert_catalog_item(self, problem: Problem) -> None:
        self.upsert_catalog([problem])

    def upsert_catalog(self, problems: Iterable[Problem]) -> int:
        conn = self._require("upsert_catalog")
        try:
            with transaction(conn):
                return upsert_problems(conn, problems)
        except sqlite3.Error as exc:
            logger.error("catalog_upsert_failed", error=repr(exc))
            raise StoreError("upsert_catalog", exc) from exc

    def get_problem(self, neet_id: int) -> Optional[Problem]:
        conn = self._require("get_problem")
        row = conn.execute(
            f"SELECT {_PROBLEM_COLUMNS} FROM problems p WHERE p.neet_id = ?;",
            (neet_id,),
        ).fetchone()
        return _row_to_problem(row) if row is not None else None

    def list_problems(self, problem_set: ProblemSet | str | None = None) -> List[Problem]:
        conn = self._require("list_problems")
        cur = conn.execute(
            f"SELECT {_PROBLEM_COLUMNS} FROM problems p WHERE 1 = 1{_problem_set_clause(problem_set)} ORDER BY p.neet_id ASC;"
        )
        return [_row_to_problem(row) for row in cur.fetchall()]

    # --- progress (read) ---
    def get_progress(self, neet_id: int) -> Optional[ProgressRecord]:
        """Return the stored progress, or None if the problem was never reviewed."""
        conn = self._require("get_progress")
        row = conn.execute(
            f"""
            SELECT p.neet_id AS neet_id, {_PROGRESS_COLUMNS}
            FROM problem_progress pp JOIN problems p ON p.id = pp.problem_id
            WHERE p.neet_id = ?;
            """,
            (neet_id,),
        ).fetchone()
        return _row_to_progress(row) if row is not None else None

    def list_due(
        self,
        today: date,
        problem_set: ProblemSet | str | None = None,
        limit: Optional[int] = None,
    ) -> List[DueProblem]:
        """Problems whose next review date is on or before ``today``.

        idx_progress_next_review を使った範囲検索で取得する（全件走査しない）。
        """
        conn = self._require("list_due")
        sql = due_query(problem_set)
        params: list = [_due_bound(today)]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        cur = conn.execute(sql + ";", params)
        return [DueProblem(problem=_row_to_problem(row), progress=_row_to_progress(row)) for row in cur.fetchall()]

    def list_by_status(self, status: ProgressStatus | str) -> List[ProgressRecord]:
        conn = self._require("list_by_status")
        cur = conn.execute(status_query(), (ProgressStatus(status).value,))
        return [_row_to_progress(row) for row in cur.fetchall()]

    def get_history(self, neet_id: int, limit: Optional[int] = None) -> List[HistoryEntry]:
        """Newest-first review history for one problem."""
        conn = self._require("get_history")
        sql = """
            SELECT h.id AS id, p.neet_id AS neet_id, h.review_date AS review_date, h.quality AS quality,
                   h.interval_before AS interval_before, h.interval_after AS interval_after,
                   h.ease_factor_before AS ease_factor_before, h.ease_factor_after AS ease_factor_after
            FROM review_history h JOIN problems p ON p.id = h.problem_id
            WHERE p.neet_id = ?
            ORDER BY h.review_date DESC, h.id DESC
        """
        params: list = [neet_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        cur = conn.execute(sql + ";", params)
        return [HistoryEntry(**dict(row)) for row in cur.fetchall()]

    def get_stats(self, today: date, problem_set: ProblemSet | str | None = None) -> ProgressStats:
        """Read-only counts by status for the given problem set."""
        conn = self._require("get_stats")
        clause = _problem_set_clause(problem_set)
        row = conn.execute(
            f"""
            SELECT
                COUNT(1) AS total,
                SUM(CASE WHEN COALESCE(pp.total_reviews, 0) > 0 THEN 1 ELSE 0 END) AS practiced,
                SUM(CASE WHEN pp.id IS NULL OR COALESCE(pp.status, 'new') = 'new' THEN 1 ELSE 0 END) AS new,
                SUM(CASE WHEN pp.status = 'learning' THEN 1 ELSE 0 END) AS learning,
                SUM(CASE WHEN pp.status = 'reviewing' THEN 1 ELSE 0 END) AS reviewing,
                SUM(CASE WHEN pp.next_review_date IS NOT NULL AND pp.next_review_date < ? THEN 1 ELSE 0 END) AS due_today
            FROM problems p LEFT JOIN problem_progress pp ON pp.problem_id = p.id
            WHERE 1 = 1{clause};
            """,
            (_due_bound(today),),
        ).fetchone()
        return ProgressStats(**{key: int(row[key] or 0) for key in row.keys()})

    # --- progress (write) ---
    def record_review(
        self,
        neet_id: int,
        result: CIRResult,
        reviewed_at: Optional[datetime] = None,
    ) -> ProgressRecord:
        """Persist one review: upsert progress and append history atomically.

        採点結果（エンジン出力）で進捗を更新し、履歴を 1 行追加する。
        どちらかが失敗した場合は両方ともロールバックされる。
        """
        conn = self._require("record_review")
        reviewed = (reviewed_at or datetime.now(timezone.utc)).replace(microsecond=0)
        state = result.new_state
        try:
            with transaction(conn):
                row = conn.execute("SELECT id FROM problems WHERE neet_id = ?;", (neet_id,)).fetchone()
                if row is None:
                    raise ProblemNotFoundError(neet_id)
                problem_id = int(row["id"])
                before = conn.execute(
                    "SELECT interval, ease_factor FROM problem_progress WHERE problem_id = ?;",
                    (problem_id,),
                ).fetchone()
                interval_before = int(before["interval"] or 0) if before is not None else 0
                ease_before = (
                    float(before["ease_factor"])
                    if before is not None and before["ease_factor"] is not None
                    else 2.5
                )
                self._upsert_progress(conn, problem_id, result, reviewed)
                self._append_history(
                    conn,
                    problem_id=problem_id,
                    reviewed_at=reviewed,
                    quality=int(result.quality),
                    interval_before=interval_before,
                    interval_after=state.interval,
                    ease_factor_before=ease_before,
                    ease_factor_after=state.ease_factor,
                )
        except sqlite3.Error as exc:
            logger.error("review_failed", neet_id=neet_id, quality=int(result.quality), error=repr(exc))
            raise StoreError("record_review", exc, neet_id=neet_id) from exc
        logger.info(
            "review_recorded",
            neet_id=neet_id,
            quality=int(result.quality),
            interval_before=interval_before,
            interval_after=state.interval,
            next_review_date=format_review_date(result.next_review_date),
        )
        return self.get_progress(neet_id)  # type: ignore[return-value]

    def _upsert_progress(
        self,
        conn: sqlite3.Connection,
        problem_id: int,
        result: CIRResult,
        reviewed_at: datetime,
    ) -> None:
        state = result.new_state
        now = to_db_timestamp(reviewed_at)
        conn.execute(
            """
            INSERT INTO problem_progress(
                problem_id, status, repetitions, interval, ease_factor, next_review_date,
                first_learned_at, last_reviewed_at, total_reviews, success_rate, consecutive_successes
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(problem_id) DO UPDATE SET
                status = excluded.status,
                repetitions = excluded.repetitions,
                interval = excluded.interval,
                ease_factor = excluded.ease_factor,
                next_review_date = excluded.next_review_date,
                first_learned_at = COALESCE(problem_progress.first_learned_at, excluded.first_learned_at),
                last_reviewed_at = excluded.last_reviewed_at,
                total_reviews = excluded.total_reviews,
                success_rate = excluded.success_rate,
                consecutive_successes = excluded.consecutive_successes;
            """,
            (
                problem_id,
                status_for_reviews(state.total_reviews).value,
                # legacy column kept in sync for older readers
                state.consecutive_successes,
                state.interval,
                state.ease_factor,
                format_review_date(result.next_review_date),
                now,
                now,
                state.total_reviews,
                state.success_rate,
                state.consecutive_successes,
            ),
        )

    def _append_history(
        self,
        conn: sqlite3.Connection,
        *,
        problem_id: int,
        reviewed_at: datetime,
        quality: int,
        interval_before: int,
        interval_after: int,
        ease_factor_before: float,
        ease_factor_after: float,
    ) -> None:
        conn.execute(
            """
            INSERT INTO review_history(
                problem_id, review_date, quality, interval_before, interval_after,
                ease_factor_before, ease_factor_after
            ) VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                problem_id,
                to_db_timestamp(reviewed_at),
                quality,
                interval_before,
                interval_after,
                ease_factor_before,
                ease_factor_after,
            ),
        )

    # --- preferences ---
    def get_preference(self, key: str, default: Optional[str] = None) -> Optional[str]:
        conn = self._require("get_preference")
        row = conn.execute("SELECT value FROM preferences WHERE key = ?;", (key,)).fetchone()
        return row["value"] if row is not None else default

    def set_preference(self, key: str, value: str) -> None:
        conn = self._require("set_preference")
        try:
            with transaction(conn):
                conn.execute(
                    """
                    INSERT INTO preferences(key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at;
                    """,
                    (key, value, to_db_timestamp(datetime.now(timezone.utc))),
                )
        except sqlite3.Error as exc:
            logger.error("preference_write_failed", key=key, error=repr(exc))
            raise StoreError("set_preference", exc) from exc


@contextmanager
def open_store(db_path: str, catalog: Sequence[Problem] = ()) -> Iterator[ProgressStore]:
    """Initialize a store for the duration of the block, then close it."""
    store = ProgressStore(db_path, catalog=catalog)
    store.initialize()
    try:
        yield store
    finally:
        store.close()
