"""Shared fixtures: a small catalog, an initialized store, and a legacy DB builder."""

import sqlite3
from pathlib import Path

import pytest

from cometode.models.problem import Problem
from cometode.store import ProgressStore


def _problem(neet_id: int, title: str, difficulty: str, *, nc150: bool, google: bool) -> Problem:
    return Problem(
        neet_id=neet_id,
        title=title,
        difficulty=difficulty,
        categories=["Arrays & Hashing"],
        tags=["array"],
        leetcode_url=f"https://leetcode.com/problems/{neet_id}/",
        neetcode_url=f"https://neetcode.io/problems/{neet_id}",
        in_neetcode_150=nc150,
        in_google=google,
    )


@pytest.fixture()
def catalog() -> list[Problem]:
    return [
        _problem(1, "Contains Duplicate", "Easy", nc150=True, google=False),
        _problem(4, "Group Anagrams", "Medium", nc150=True, google=False),
        _problem(14, "Trapping Rain Water", "Hard", nc150=True, google=True),
        _problem(151, "Logger Rate Limiter", "Easy", nc150=False, google=True),
    ]


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "data" / "cometode.sqlite3")


@pytest.fixture()
def store(db_path: str, catalog: list[Problem]):
    s = ProgressStore(db_path, catalog=catalog).initialize()
    try:
        yield s
    finally:
        s.close()


def create_legacy_database(path: str, *, with_problem_sets: bool = False) -> None:
    """Build a DB in the pre-CIR (SM-2 era) shape with a few progress rows.

    with_problem_sets=True で problem-set 列だけ追加済みの中間世代を再現する。
    """
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        flag_columns = (
            "in_neetcode_150 INTEGER NOT NULL DEFAULT 0,\n in_google INTEGER NOT NULL DEFAULT 0,"
            if with_problem_sets
            else ""
        )
        conn.executescript(
            f"""
            CREATE TABLE problems (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                neet_id INTEGER UNIQUE NOT NULL,
                title TEXT NOT NULL,
                difficulty TEXT NOT NULL CHECK (difficulty IN ('Easy', 'Medium', 'Hard')),
                categories TEXT NOT NULL DEFAULT '[]',
                tags TEXT NOT NULL DEFAULT '[]',
                leetcode_url TEXT NOT NULL,
                neetcode_url TEXT NOT NULL,
                {flag_columns}
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );
            CREATE TABLE problem_progress (
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
                FOREIGN KEY (problem_id) REFERENCES problems(id) ON DELETE CASCADE
            );
            CREATE TABLE review_history (
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
            CREATE INDEX idx_progress_next_review ON problem_progress(next_review_date);
            CREATE INDEX idx_progress_status ON problem_progress(status);

            INSERT INTO problems(id, neet_id, title, difficulty, leetcode_url, neetcode_url)
                VALUES (1, 1, 'Contains Duplicate (old title)', 'Easy', 'u', 'n');
            INSERT INTO problems(id, neet_id, title, difficulty, leetcode_url, neetcode_url)
                VALUES (2, 4, 'Group Anagrams', 'Medium', 'u', 'n');
            INSERT INTO problems(id, neet_id, title, difficulty, leetcode_url, neetcode_url)
                VALUES (3, 200, 'Legacy Only', 'Hard', 'u', 'n');

            INSERT INTO problem_progress(problem_id, status, repetitions, interval, ease_factor,
                                         next_review_date, total_reviews)
                VALUES (1, 'reviewing', 7, 20, 2.6, '2026-10-01', 10);
            INSERT INTO problem_progress(problem_id, status, repetitions, interval, ease_factor,
                                         next_review_date, total_reviews)
                VALUES (2, 'learning', 2, 6, 2.5, '2026-10-25', 3);
            INSERT INTO problem_progress(problem_id, status, repetitions, interval, ease_factor,
                                         next_review_date, total_reviews)
                VALUES (3, 'new', 0, 0, 2.5, NULL, 0);

            INSERT INTO review_history(problem_id, review_date, quality, interval_before, interval_after,
                                       ease_factor_before, ease_factor_after)
                VALUES (1, '2026-09-11 08:00:00', 2, 10, 20, 2.5, 2.6);
            """
        )
        conn.commit()
    finally:
        conn.close()


@pytest.fixture()
def legacy_db(db_path: str):
    """Factory fixture: build a legacy-shaped DB at db_path and return the path."""

    def _build(*, with_problem_sets: bool = False) -> str:
        create_legacy_database(db_path, with_problem_sets=with_problem_sets)
        return db_path

    return _build
