"""Error taxonomy for the task scheduler.

Only ValidationError and NotFound reach the caller of a CRUD operation.
Everything raised while a task executes is folded into that task's
statistics by the dispatcher and never escapes the scheduler loop.
"""

from __future__ import annotations

from pathlib import Path


class SweeperError(Exception):
    """Base class for all scheduler errors."""


class ValidationError(SweeperError, ValueError):
    """Bad user input at create/update time. Never persisted."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")

    def to_dict(self) -> dict:
        return {"error": "validation_error", "field": self.field, "reason": self.reason}


class NotFound(SweeperError, KeyError):
    """A CRUD operation referenced an unknown task id."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(task_id)

    def __str__(self) -> str:
        return f"Task not found: {self.task_id}"


class CorruptPersistence(SweeperError):
    """The task document exists but cannot be parsed or validated."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Unreadable task store {self.path}: {reason}")


class StoreWriteError(SweeperError, OSError):
    """Saving the task document failed. Retried on the next mutation."""


class ActionFailure(SweeperError):
    """Raised by a system action; converted to a failed Outcome by the dispatcher."""
