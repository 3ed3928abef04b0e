import json
from pathlib import Path

import pytest

from cometode.catalog import load_catalog, parse_catalog
from cometode.errors import CatalogError
from cometode.models.common import Difficulty


def _entry(neet_id: int, **overrides) -> dict:
    data = {
        "neet_id": neet_id,
        "title": f"Problem {neet_id}",
        "difficulty": "Medium",
        "categories": ["Graphs"],
        "tags": ["bfs"],
        "leetcode_url": "https://leetcode.com/problems/x/",
        "neetcode_url": "https://neetcode.io/problems/x",
        "in_neetcode_150": True,
        "in_google": False,
    }
    data.update(overrides)
    return data


def test_packaged_catalog_loads():
    problems = load_catalog()
    assert len(problems) == 12
    by_id = {p.neet_id: p for p in problems}
    assert by_id[3].title == "Two Sum"
    assert by_id[3].difficulty is Difficulty.easy
    assert by_id[151].in_neetcode_150 is False
    assert by_id[151].in_google is True


def test_load_catalog_from_path(tmp_path: Path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps([_entry(1), _entry(2, difficulty="Hard", extra_field="ignored")]), encoding="utf-8")

    problems = load_catalog(str(path))

    assert [p.neet_id for p in problems] == [1, 2]
    assert problems[1].difficulty is Difficulty.hard


def test_missing_file_is_a_catalog_error(tmp_path: Path):
    with pytest.raises(CatalogError, match="cannot read file"):
        load_catalog(str(tmp_path / "nope.json"))


@pytest.mark.parametrize(
    "text, message",
    [
        ("{not json", "malformed JSON"),
        (json.dumps({"neet_id": 1}), "expected a JSON array"),
        (json.dumps([_entry(1), _entry(1)]), "duplicate neet_id 1"),
        (json.dumps([_entry(1, difficulty="Extreme")]), "difficulty"),
        (json.dumps([_entry(0)]), "neet_id"),
        (json.dumps([_entry(5, title="")]), "title"),
    ],
)
def test_invalid_catalogs_are_rejected(text, message):
    with pytest.raises(CatalogError, match=message) as excinfo:
        parse_catalog(text, source="inline.json")
    assert excinfo.value.path == "inline.json"
