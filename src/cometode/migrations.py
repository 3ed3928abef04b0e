"""Structurally-probed schema migrations.

Each step checks whether the structure it introduces already exists instead of
relying on a version counter, so a database created by any earlier release
converges on the current shape. Steps are additive (new defaulted columns
only), carry their own backfill, and run inside a single transaction.

列の有無で判定するため、何度実行しても 2 回目以降は何もしない（冪等）。
失敗は MigrationError として呼び出し側へ伝播し、起動を止める。
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .errors import MigrationError
from .logging import logger
from .models.problem import Problem
from .schema import POST_MIGRATION_STATEMENTS, has_column, transaction, upsert_problems

# neet_id <= 150 だった旧データは NeetCode 150 の問題として扱う
LEGACY_NEETCODE_150_MAX_ID = 150
# 旧 repetitions から連続成功数を推定する際の上限（BASE_INTERVALS の最終 index）
MAX_BACKFILLED_STREAK = 5


@dataclass(frozen=True)
class Migration:
    name: str
    probe: Callable[[sqlite3.Connection], bool]
    apply: Callable[[sqlite3.Connection], None]
    backfill: Callable[[sqlite3.Connection, Sequence[Problem]], None]

    def is_applied(self, conn: sqlite3.Connection) -> bool:
        return self.probe(conn)


# --- problem_set_columns ---
def _has_problem_set_columns(conn: sqlite3.Connection) -> bool:
    return has_column(conn, "problems", "in_neetcode_150")


def _add_problem_set_columns(conn: sqlite3.Connection) -> None:
    if not has_column(conn, "problems", "in_neetcode_150"):
        conn.execute("ALTER TABLE problems ADD COLUMN in_neetcode_150 INTEGER NOT NULL DEFAULT 0;")
    if not has_column(conn, "problems", "in_google"):
        conn.execute("ALTER TABLE problems ADD COLUMN in_google INTEGER NOT NULL DEFAULT 0;")


def _backfill_problem_sets(conn: sqlite3.Connection, catalog: Sequence[Problem]) -> None:
    conn.execute(
        "UPDATE problems SET in_neetcode_150 = 1 WHERE neet_id <= ?;",
        (LEGACY_NEETCODE_150_MAX_ID,),
    )
    # 新しく追加された問題やフラグを反映するためカタログを再投入
    upsert_problems(conn, catalog)


# --- cir_columns ---
def _has_cir_columns(conn: sqlite3.Connection) -> bool:
    return has_column(conn, "problem_progress", "success_rate")


def _add_cir_columns(conn: sqlite3.Connection) -> None:
    if not has_column(conn, "problem_progress", "success_rate"):
        conn.execute("ALTER TABLE problem_progress ADD COLUMN success_rate REAL DEFAULT 0.5;")
    if not has_column(conn, "problem_progress", "consecutive_successes"):
        conn.execute("ALTER TABLE problem_progress ADD COLUMN consecutive_successes INTEGER DEFAULT 0;")


def _backfill_cir_state(conn: sqlite3.Connection, catalog: Sequence[Problem]) -> None:
    # repetitions roughly maps to consecutive successes in the SM-2 model
    conn.execute(
        """
        UPDATE problem_progress
        SET consecutive_successes = CASE
            WHEN COALESCE(repetitions, 0) >= ? THEN ?
            ELSE COALESCE(repetitions, 0)
        END;
        """,
        (MAX_BACKFILLED_STREAK, MAX_BACKFILLED_STREAK),
    )
    conn.execute(
        """
        UPDATE problem_progress
        SET success_rate = CASE
            WHEN COALESCE(total_reviews, 0) = 0 THEN 0.5
            WHEN status = 'reviewing' THEN 0.8
            WHEN status = 'learning' THEN 0.6
            ELSE 0.5
        END;
        """
    )


MIGRATIONS: Sequence[Migration] = (
    Migration(
        name="problem_set_columns",
        probe=_has_problem_set_columns,
        apply=_add_problem_set_columns,
        backfill=_backfill_problem_sets,
    ),
    Migration(
        name="cir_columns",
        probe=_has_cir_columns,
        apply=_add_cir_columns,
        backfill=_backfill_cir_state,
    ),
)


def pending_migrations(
    conn: sqlite3.Connection, migrations: Optional[Sequence[Migration]] = None
) -> List[str]:
    steps = MIGRATIONS if migrations is None else migrations
    return [m.name for m in steps if not m.is_applied(conn)]


def run_migrations(
    conn: sqlite3.Connection,
    catalog: Sequence[Problem] = (),
    migrations: Optional[Sequence[Migration]] = None,
) -> List[str]:
    """Apply every pending step in order and return the names applied.

    Raises MigrationError naming the failing step. A failed step is rolled
    back as a whole; later steps are not attempted.
    """
    steps = MIGRATIONS if migrations is None else migrations
    applied: List[str] = []
    for migration in steps:
        try:
            if migration.is_applied(conn):
                continue
            logger.info("migration_started", step=migration.name)
            with transaction(conn):
                migration.apply(conn)
                migration.backfill(conn, catalog)
        except sqlite3.Error as exc:
            logger.error("migration_failed", step=migration.name, error=repr(exc))
            raise MigrationError(migration.name, exc) from exc
        logger.info("migration_applied", step=migration.name)
        applied.append(migration.name)

    try:
        with transaction(conn):
            for stmt in POST_MIGRATION_STATEMENTS:
                conn.execute(stmt)
    except sqlite3.Error as exc:
        logger.error("migration_failed", step="post_migration_indexes", error=repr(exc))
        raise MigrationError("post_migration_indexes", exc) from exc
    return applied
