"""Statistics recorder -- folds one execution attempt into a task."""

from __future__ import annotations

from datetime import datetime

from core.models.tasks import LastResult, Outcome, RunRecord, Task

DEFAULT_HISTORY_CAP = 50


def record_run(
    task: Task,
    outcome: Outcome,
    at: datetime,
    *,
    duration_ms: int = 0,
    cap: int = DEFAULT_HISTORY_CAP,
) -> Task:
    """Count the attempt, set last_result/last_run_at and append to history.

    Mutates and returns `task`. Existing history entries are never
    rewritten; the oldest ones are dropped once the list exceeds `cap`.
    """
    stats = task.stats
    stats.runs_total += 1
    if outcome.success:
        stats.successes += 1
        stats.consecutive_failures = 0
    else:
        stats.failures += 1
        stats.consecutive_failures += 1
    stats.last_result = LastResult(success=outcome.success, message=outcome.message, at=at)

    # Wall-clock can step backwards; last_run_at never does
    if task.last_run_at is None or at > task.last_run_at:
        task.last_run_at = at

    task.history.append(RunRecord(
        at=at,
        success=outcome.success,
        message=outcome.message,
        duration_ms=max(0, int(duration_ms)),
    ))
    overflow = len(task.history) - max(1, cap)
    if overflow > 0:
        del task.history[:overflow]

    return task
