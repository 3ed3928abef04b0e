from __future__ import annotations

from enum import Enum, IntEnum


class Difficulty(str, Enum):
    """Fixed problem difficulty from the catalog."""

    easy = "Easy"
    medium = "Medium"
    hard = "Hard"


class Quality(IntEnum):
    """Self-graded recall quality (0-3)."""

    again = 0
    hard = 1
    good = 2
    easy = 3


class ProgressStatus(str, Enum):
    new = "new"
    learning = "learning"
    reviewing = "reviewing"


class ProblemSet(str, Enum):
    """Catalog subsets used for filtering lists and stats."""

    all = "all"
    neetcode150 = "neetcode150"
    google = "google"
