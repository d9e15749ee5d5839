"""Task store -- the in-memory task set and its single JSON document.

The JSON file is the source of truth across restarts. Every mutation
(CRUD from the HTTP/CLI surface, run outcomes from the scheduler loop) goes
through one re-entrant lock and is followed by an immediate whole-document
save. Saves are atomic: write a temp file next to the target, fsync, then
os.replace() it over the old document.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

import pydantic
from pydantic import BaseModel

from core.clock import Clock, SystemClock
from core.errors import CorruptPersistence, NotFound, StoreWriteError, ValidationError
from core.models.settings import SchedulerSettings, TaskDocument
from core.models.tasks import Task, TaskDraft, TaskPatch, new_task_id

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

EligibilityFn = Callable[[Task], datetime | None]


def _to_validation_error(exc: pydantic.ValidationError) -> ValidationError:
    """Reduce a pydantic error to the first failing field."""
    err = exc.errors()[0]
    field = ".".join(str(part) for part in err.get("loc", ())) or "task"
    reason = str(err.get("msg", "invalid value"))
    if reason.startswith("Value error, "):
        reason = reason[len("Value error, "):]
    return ValidationError(field, reason)


def _validate(model_class: type[M], data: M | dict[str, Any]) -> M:
    if isinstance(data, model_class):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    if not isinstance(data, dict):
        raise ValidationError("body", f"expected an object, got {type(data).__name__}")
    try:
        return model_class.model_validate(data)
    except pydantic.ValidationError as exc:
        raise _to_validation_error(exc) from exc


class TaskStore:
    """Owns task identity, CRUD validation and persistence.

    Usage:
        store = TaskStore(home / "tasks.json")
        store.load()
        task = store.create({"name": "...", "action": {...}, "schedule": {...}})
    """

    def __init__(
        self,
        path: Path,
        *,
        clock: Clock | None = None,
        eligibility: EligibilityFn | None = None,
    ) -> None:
        self._path = Path(path)
        self._clock = clock or SystemClock(timezone.utc)
        self._eligibility = eligibility
        self._lock = threading.RLock()
        self._tasks: dict[str, Task] = {}
        self._settings = SchedulerSettings()
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dirty(self) -> bool:
        """True while the last save failed and the file lags behind memory."""
        return self._dirty

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> list[Task]:
        """Replace the in-memory set with the document on disk.

        A missing file is an empty store. Anything unreadable raises
        CorruptPersistence and leaves the in-memory state untouched.
        """
        with self._lock:
            if not self._path.exists():
                logger.info("No task store at %s, starting empty", self._path)
                self._tasks = {}
                self._settings = SchedulerSettings()
                return []

            try:
                raw = self._path.read_bytes().decode("utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise CorruptPersistence(self._path, str(exc)) from exc

            try:
                document = TaskDocument.model_validate_json(raw)
            except pydantic.ValidationError as exc:
                err = exc.errors()[0]
                where = ".".join(str(p) for p in err.get("loc", ())) or "document"
                raise CorruptPersistence(self._path, f"{where}: {err.get('msg')}") from exc

            tasks: dict[str, Task] = {}
            for task in document.tasks:
                if task.id in tasks:
                    raise CorruptPersistence(self._path, f"duplicate task id {task.id}")
                tasks[task.id] = task

            self._tasks = tasks
            self._settings = document.settings
            self._dirty = False
            self.refresh_eligibility()
            logger.info("Loaded %d task(s) from %s", len(tasks), self._path)
            return self.snapshot()

    def quarantine(self) -> Path | None:
        """Move an unreadable document aside so a later save cannot overwrite it."""
        with self._lock:
            if not self._path.exists():
                return None
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
            target = self._path.with_name(f"{self._path.name}.corrupt-{stamp}")
            counter = 1
            while target.exists():
                target = self._path.with_name(f"{self._path.name}.corrupt-{stamp}-{counter}")
                counter += 1
            os.replace(self._path, target)
            logger.warning("Preserved unreadable task store as %s", target)
            return target

    def save(self) -> None:
        """Write the whole document atomically. Raises StoreWriteError."""
        with self._lock:
            document = TaskDocument(settings=self._settings, tasks=list(self._tasks.values()))
            payload = document.model_dump_json(indent=2)
            tmp_name: str | None = None
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent,
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self._path)
                tmp_name = None
            except OSError as exc:
                self._dirty = True
                raise StoreWriteError(f"Failed to write {self._path}: {exc}") from exc
            finally:
                if tmp_name is not None:
                    try:
                        os.unlink(tmp_name)
                    except OSError:
                        logger.debug("Could not remove temp file %s", tmp_name)
            self._dirty = False
            logger.debug("Saved %d task(s) to %s", len(self._tasks), self._path)

    def flush(self) -> bool:
        """Retry a failed save. Returns True when the file matches memory."""
        with self._lock:
            if not self._dirty:
                return True
            try:
                self.save()
            except StoreWriteError:
                logger.exception("Task store flush failed")
                return False
            return True

    def _commit(self) -> None:
        """Save after a mutation. A failure is logged and retried next time."""
        try:
            self.save()
        except StoreWriteError:
            logger.exception("Task store save failed; will retry on the next change")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> list[Task]:
        """Deep copies of every task, in creation order."""
        with self._lock:
            return [task.model_copy(deep=True) for task in self._tasks.values()]

    def get(self, task_id: str) -> Task:
        with self._lock:
            return self._require(task_id).model_copy(deep=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._tasks

    @property
    def settings(self) -> SchedulerSettings:
        with self._lock:
            return self._settings.model_copy()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, draft: TaskDraft | dict[str, Any]) -> Task:
        """Validate a draft, assign a fresh id and persist it."""
        draft = _validate(TaskDraft, draft)
        with self._lock:
            task = Task.from_draft(draft, now=self._clock.now())
            while task.id in self._tasks:
                task.id = new_task_id()
            task = self._with_eligibility(task)
            self._tasks[task.id] = task
            self._commit()
            logger.info("Created task %s (%s)", task.id, task.name)
            return task.model_copy(deep=True)

    def update(self, task_id: str, patch: TaskPatch | dict[str, Any]) -> Task:
        """Apply a partial update; a new schedule or action replaces the old one."""
        patch = _validate(TaskPatch, patch)
        with self._lock:
            current = self._require(task_id)
            changes = patch.changes()
            if not changes:
                return current.model_copy(deep=True)

            merged = current.model_dump()
            merged.update(changes)
            merged["updated_at"] = self._clock.now()
            try:
                updated = Task.model_validate(merged)
            except pydantic.ValidationError as exc:
                raise _to_validation_error(exc) from exc

            if "schedule" in changes or "action" in changes:
                updated = self._with_eligibility(updated)
            self._tasks[task_id] = updated
            self._commit()
            logger.info("Updated task %s: %s", task_id, ", ".join(sorted(changes)))
            return updated.model_copy(deep=True)

    def set_enabled(self, task_id: str, enabled: bool) -> Task:
        return self.update(task_id, TaskPatch(enabled=enabled))

    def delete(self, task_id: str) -> None:
        """Remove a task. Deleting an unknown (or already deleted) id is an error."""
        with self._lock:
            self._require(task_id)
            del self._tasks[task_id]
            self._commit()
            logger.info("Deleted task %s", task_id)

    def apply(self, task_id: str, change: Callable[[Task], Task]) -> Task:
        """Replace a task with change(copy_of_task) and persist.

        Used by the scheduler loop to record run outcomes under the same lock
        as CRUD operations. The result is revalidated; an invalid task raises
        ValidationError and the stored task is left as it was.
        """
        with self._lock:
            current = self._require(task_id)
            updated = change(current.model_copy(deep=True))
            if updated.id != task_id:
                raise ValueError("task id is immutable")
            try:
                updated = Task.model_validate(updated.model_dump())
            except pydantic.ValidationError as exc:
                raise _to_validation_error(exc) from exc
            self._tasks[task_id] = updated
            self._commit()
            return updated.model_copy(deep=True)

    def update_settings(self, **changes: Any) -> SchedulerSettings:
        with self._lock:
            merged = self._settings.model_dump()
            merged.update(changes)
            try:
                settings = SchedulerSettings.model_validate(merged)
            except pydantic.ValidationError as exc:
                raise _to_validation_error(exc) from exc
            self._settings = settings
            self._commit()
            logger.info("Scheduler settings updated: %s", ", ".join(sorted(changes)))
            return settings.model_copy()

    def refresh_eligibility(self) -> None:
        """Recompute the cached next_eligible_at hint for every task (no save)."""
        with self._lock:
            for task_id, task in list(self._tasks.items()):
                self._tasks[task_id] = self._with_eligibility(task)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    def _with_eligibility(self, task: Task) -> Task:
        if self._eligibility is None:
            return task
        task.next_eligible_at = self._eligibility(task)
        return task


def open_store(
    path: Path,
    *,
    clock: Clock | None = None,
    eligibility: EligibilityFn | None = None,
) -> TaskStore:
    """Create and load a store, falling back to an empty one on corruption.

    The unreadable document is renamed aside, never overwritten.
    """
    store = TaskStore(path, clock=clock, eligibility=eligibility)
    try:
        store.load()
    except CorruptPersistence as exc:
        logger.error("%s -- starting with an empty task store", exc)
        try:
            store.quarantine()
        except OSError:
            logger.exception("Could not move unreadable task store aside")
            # Save elsewhere so the original file stays intact
            recovered = path.with_name(f"{path.name}.recovered")
            store = TaskStore(recovered, clock=clock, eligibility=eligibility)
            logger.warning("Writing tasks to %s until %s is repaired", recovered, path)
    return store
