"""Problem catalog loader.

カタログ（問題一覧 JSON）を読み込み、Problem モデルとして検証する。
ストアはこれを upsert の入力として扱うだけで、進捗の正本にはしない。
"""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from .errors import CatalogError
from .logging import logger
from .models.problem import Problem

DEFAULT_CATALOG_RESOURCE = "data/problems.json"

_PROBLEM_LIST = TypeAdapter(List[Problem])


def _read_catalog_text(path: Optional[str]) -> tuple[str, str]:
    if path:
        p = Path(path)
        try:
            return str(p), p.read_text(encoding="utf-8")
        except OSError as exc:
            raise CatalogError(str(p), f"cannot read file ({exc})") from exc
    resource = resources.files("cometode").joinpath(DEFAULT_CATALOG_RESOURCE)
    return str(resource), resource.read_text(encoding="utf-8")


def parse_catalog(text: str, source: str = "<memory>") -> List[Problem]:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CatalogError(source, f"malformed JSON ({exc})") from exc
    if not isinstance(raw, list):
        raise CatalogError(source, "expected a JSON array of problems")
    try:
        problems = _PROBLEM_LIST.validate_python(raw)
    except ValidationError as exc:
        raise CatalogError(source, str(exc)) from exc

    seen: set[int] = set()
    for problem in problems:
        if problem.neet_id in seen:
            raise CatalogError(source, f"duplicate neet_id {problem.neet_id}")
        seen.add(problem.neet_id)
    return problems


def load_catalog(path: Optional[str] = None) -> List[Problem]:
    """Load and validate the catalog (packaged default when path is None)."""
    source, text = _read_catalog_text(path)
    problems = parse_catalog(text, source=source)
    logger.info("catalog_loaded", source=source, count=len(problems))
    return problems
