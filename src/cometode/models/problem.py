from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .common import Difficulty


class Problem(BaseModel):
    """A catalog entry (read-only for the scheduler).

    カタログ由来の問題メタデータ。neet_id が同一性キーで、ストアへは
    upsert（後勝ち）で反映される。
    """

    model_config = ConfigDict(extra="ignore")

    neet_id: int = Field(ge=1)
    title: str = Field(min_length=1)
    difficulty: Difficulty
    categories: list[str] = []
    tags: list[str] = []
    leetcode_url: str = ""
    neetcode_url: str = ""
    in_neetcode_150: bool = False
    in_google: bool = False
