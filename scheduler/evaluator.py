"""Due-check evaluator -- decides whether a task should run right now.

Pure functions, no I/O. Everything the decision depends on is passed in:
the task, the current time, the timezone used for time-of-day schedules,
a metrics snapshot (condition schedules only) and whether a startup task
already fired in this process.

Rules per schedule type:
    startup       due once per process lifetime
    interval      due when now - last_run_at >= minutes (never run -> due)
    daily         due once the first daily occurrence after the anchor has passed
    weekly        like daily, restricted to one weekday
    on_condition  due when the metric satisfies the comparison and the
                  cooldown since last_run_at has elapsed

The anchor of daily/weekly schedules is last_run_at, or created_at for a
task that never ran. Only the first occurrence after the anchor matters, so
a machine that was off for a week fires one catch-up run, not seven.
"""

from __future__ import annotations

import operator
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Literal

from core.clock import localize, to_zone
from core.models.system import SystemMetrics
from core.models.tasks import (
    WEEKDAYS,
    ConditionSchedule,
    DailySchedule,
    IntervalSchedule,
    StartupSchedule,
    Task,
    WeeklySchedule,
)

DEFAULT_COOLDOWN = timedelta(minutes=30)

_COMPARATORS = {
    "gt": operator.gt,
    "ge": operator.ge,
    "lt": operator.lt,
    "le": operator.le,
}


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of a due-check: due, not_due or skipped (with a reason)."""

    verdict: Literal["due", "not_due", "skipped"]
    reason: str = ""

    @property
    def is_due(self) -> bool:
        return self.verdict == "due"


DUE = Decision("due")


def not_due(reason: str) -> Decision:
    return Decision("not_due", reason)


def skipped(reason: str) -> Decision:
    return Decision("skipped", reason)


# ---------------------------------------------------------------------------
# Schedule math
# ---------------------------------------------------------------------------

def next_occurrence(
    schedule: DailySchedule | WeeklySchedule,
    after: datetime,
    tz: tzinfo | None = None,
) -> datetime:
    """First wall-clock occurrence of the schedule strictly after `after`."""
    weekday = WEEKDAYS.index(schedule.weekday) if isinstance(schedule, WeeklySchedule) else None
    start = to_zone(after, tz).date()

    # 8 days covers "same weekday, but the time already passed"
    for offset in range(8):
        day = start + timedelta(days=offset)
        if weekday is not None and day.weekday() != weekday:
            continue
        candidate = localize(datetime.combine(day, schedule.time), tz)
        if candidate > after:
            return candidate

    raise AssertionError("no occurrence within eight days")  # pragma: no cover


def anchor_of(task: Task) -> datetime:
    return task.last_run_at or task.created_at


def condition_cooldown(schedule: ConditionSchedule, default: timedelta) -> timedelta:
    if schedule.cooldown_minutes is None:
        return default
    return timedelta(minutes=schedule.cooldown_minutes)


def condition_holds(schedule: ConditionSchedule, value: float) -> bool:
    return _COMPARATORS[schedule.comparison](value, schedule.threshold)


def next_eligible_at(
    task: Task,
    *,
    tz: tzinfo | None = None,
    default_cooldown: timedelta = DEFAULT_COOLDOWN,
) -> datetime | None:
    """Earliest time the task could become due; None means "check every tick".

    Cached on the task as next_eligible_at and recomputed after every run,
    edit and load.
    """
    schedule = task.schedule
    if isinstance(schedule, IntervalSchedule):
        if task.last_run_at is None:
            return None
        return task.last_run_at + timedelta(minutes=schedule.minutes)
    if isinstance(schedule, (DailySchedule, WeeklySchedule)):
        return next_occurrence(schedule, anchor_of(task), tz)
    if isinstance(schedule, ConditionSchedule):
        if task.last_run_at is None:
            return None
        return task.last_run_at + condition_cooldown(schedule, default_cooldown)
    return None


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------

def evaluate(
    task: Task,
    now: datetime,
    *,
    tz: tzinfo | None = None,
    metrics: SystemMetrics | None = None,
    started_this_process: bool = False,
    default_cooldown: timedelta = DEFAULT_COOLDOWN,
) -> Decision:
    """Decide whether `task` is due at `now`."""
    if not task.enabled:
        return not_due("disabled")

    schedule = task.schedule

    # Cached hint: time-based schedules cannot be due before it
    hint = task.next_eligible_at
    if (
        hint is not None
        and isinstance(schedule, (IntervalSchedule, DailySchedule, WeeklySchedule))
        and now < hint
    ):
        return not_due(f"next run at {hint.isoformat()}")

    if isinstance(schedule, StartupSchedule):
        if started_this_process:
            return not_due("already ran since start")
        return DUE

    if isinstance(schedule, IntervalSchedule):
        if task.last_run_at is None:
            return DUE
        due_at = task.last_run_at + timedelta(minutes=schedule.minutes)
        if now >= due_at:
            return DUE
        return not_due(f"next run at {due_at.isoformat()}")

    if isinstance(schedule, (DailySchedule, WeeklySchedule)):
        due_at = next_occurrence(schedule, anchor_of(task), tz)
        if now >= due_at:
            return DUE
        return not_due(f"next run at {due_at.isoformat()}")

    if isinstance(schedule, ConditionSchedule):
        value = metrics.value(schedule.metric) if metrics is not None else None
        if value is None:
            return skipped(f"{schedule.metric} unavailable")
        if not condition_holds(schedule, value):
            return not_due(f"{schedule.metric}={value:g} does not meet {schedule.comparison} {schedule.threshold:g}")
        cooldown = condition_cooldown(schedule, default_cooldown)
        if task.last_run_at is not None and now - task.last_run_at < cooldown:
            until = task.last_run_at + cooldown
            return skipped(f"cooldown until {until.isoformat()}")
        return DUE

    return not_due(f"unsupported schedule {type(schedule).__name__}")
