"""Exception types raised by the scheduler, store and catalog loader."""

from __future__ import annotations

from typing import Any


class CometodeError(Exception):
    """Base class for all application errors."""


class NotInitializedError(CometodeError):
    """The progress store was used before ``initialize()`` completed."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"Progress store not initialized; call initialize() before {operation}()")
        self.operation = operation


class MigrationError(CometodeError):
    """A schema migration step failed during startup.

    起動時のマイグレーション失敗は致命的。どのステップで失敗したかを保持し、
    半端に移行された DB をスケジューラが読まないよう呼び出し側で停止させる。
    """

    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"Migration step '{step}' failed: {cause}")
        self.step = step
        self.cause = cause


class InvalidDifficultyError(CometodeError, ValueError):
    """A problem references a difficulty outside Easy/Medium/Hard."""

    def __init__(self, value: Any) -> None:
        super().__init__(f"Invalid difficulty: {value!r} (expected Easy, Medium or Hard)")
        self.value = value


class ProblemNotFoundError(CometodeError, LookupError):
    def __init__(self, neet_id: int) -> None:
        super().__init__(f"Problem not found: neet_id={neet_id}")
        self.neet_id = neet_id


class CatalogError(CometodeError):
    """The problem catalog file could not be read or validated."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"Invalid problem catalog at {path}: {detail}")
        self.path = path
        self.detail = detail


class StoreError(CometodeError):
    """A store write failed and was rolled back.

    どの操作・どのレコードで失敗したかを保持する（自動リトライはしない）。
    """

    def __init__(self, operation: str, cause: BaseException, neet_id: int | None = None) -> None:
        target = f" for neet_id={neet_id}" if neet_id is not None else ""
        super().__init__(f"Store operation '{operation}' failed{target}: {cause}")
        self.operation = operation
        self.neet_id = neet_id
        self.cause = cause
