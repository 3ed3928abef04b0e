"""SQLite schema and low-level helpers shared by the store and migrations."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from typing import Iterable, Iterator, List

from .logging import logger
from .models.problem import Problem

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS problems (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        neet_id INTEGER UNIQUE NOT NULL,
        title TEXT NOT NULL,
        difficulty TEXT NOT NULL CHECK (difficulty IN ('Easy', 'Medium', 'Hard')),
        categories TEXT NOT NULL DEFAULT '[]',
        tags TEXT NOT NULL DEFAULT '[]',
        leetcode_url TEXT NOT NULL,
        neetcode_url TEXT NOT NULL,
        in_neetcode_150 INTEGER NOT NULL DEFAULT 0,
        in_google INTEGER NOT NULL DEFAULT 0,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS problem_progress (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        problem_id INTEGER UNIQUE NOT NULL,
        status TEXT DEFAULT 'new' CHECK (status IN ('new', 'learning', 'reviewing')),
        repetitions INTEGER DEFAULT 0,
        interval INTEGER DEFAULT 0,
        ease_factor REAL DEFAULT 2.5,
        next_review_date TEXT,
        first_learned_at DATETIME,
        last_reviewed_at DATETIME,
        total_reviews INTEGER DEFAULT 0,
        success_rate REAL DEFAULT 0.5,
        consecutive_successes INTEGER DEFAULT 0,
        FOREIGN KEY (problem_id) REFERENCES problems(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS review_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        problem_id INTEGER NOT NULL,
        review_date DATETIME DEFAULT CURRENT_TIMESTAMP,
        quality INTEGER NOT NULL CHECK (quality >= 0 AND quality <= 3),
        interval_before INTEGER,
        interval_after INTEGER,
        ease_factor_before REAL,
        ease_factor_after REAL,
        FOREIGN KEY (problem_id) REFERENCES problems(id) ON DELETE CASCADE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS preferences (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_progress_next_review ON problem_progress(next_review_date);",
    "CREATE INDEX IF NOT EXISTS idx_progress_status ON problem_progress(status);",
    "CREATE INDEX IF NOT EXISTS idx_history_problem ON review_history(problem_id);",
    "CREATE INDEX IF NOT EXISTS idx_history_date ON review_history(review_date);",
)

# problem-set フラグ列はマイグレーションで後付けされる場合があるため、
# インデックスはマイグレーション完了後に作成する
POST_MIGRATION_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_problems_neetcode_150 ON problems(in_neetcode_150);",
    "CREATE INDEX IF NOT EXISTS idx_problems_google ON problems(in_google);",
)


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the block in one ``BEGIN IMMEDIATE`` transaction.

    The connection must be in autocommit mode (``isolation_level=None``).
    Any exception rolls back and propagates.
    """
    conn.execute("BEGIN IMMEDIATE;")
    try:
        yield conn
    except BaseException:
        try:
            conn.execute("ROLLBACK;")
        except sqlite3.Error as exc:
            logger.warning("rollback_failed", error=repr(exc))
        raise
    conn.execute("COMMIT;")


def table_columns(conn: sqlite3.Connection, table: str) -> List[str]:
    cur = conn.execute(f"PRAGMA table_info({table});")
    return [row[1] for row in cur.fetchall()]


def has_column(conn: sqlite3.Connection, table: str, column: str) -> bool:
    return column in table_columns(conn, table)


def upsert_problems(conn: sqlite3.Connection, problems: Iterable[Problem]) -> int:
    """Insert or update catalog rows keyed by neet_id (last writer wins).

    Caller owns the transaction. Returns the number of rows written.
    """
    count = 0
    for problem in problems:
        conn.execute(
            """
            INSERT INTO problems(
                neet_id, title, difficulty, categories, tags,
                leetcode_url, neetcode_url, in_neetcode_150, in_google
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(neet_id) DO UPDATE SET
                title = excluded.title,
                difficulty = excluded.difficulty,
                categories = excluded.categories,
                tags = excluded.tags,
                leetcode_url = excluded.leetcode_url,
                neetcode_url = excluded.neetcode_url,
                in_neetcode_150 = excluded.in_neetcode_150,
                in_google = excluded.in_google;
            """,
            (
                problem.neet_id,
                problem.title,
                problem.difficulty.value,
                json.dumps(problem.categories, ensure_ascii=False),
                json.dumps(problem.tags, ensure_ascii=False),
                problem.leetcode_url,
                problem.neetcode_url,
                1 if problem.in_neetcode_150 else 0,
                1 if problem.in_google else 0,
            ),
        )
        count += 1
    return count
