"""Pydantic data models shared across all components."""

from core.models.settings import SchedulerSettings, SchedulerStatus, TaskDocument
from core.models.system import SystemMetrics
from core.models.tasks import (
    ActionKind,
    CleanDisk,
    CleanRam,
    ConditionSchedule,
    DailySchedule,
    DiskCleaningOptions,
    IntervalSchedule,
    LastResult,
    Outcome,
    RunRecord,
    Schedule,
    StartupSchedule,
    Task,
    TaskDraft,
    TaskPatch,
    TaskStats,
    ToggleDefender,
    WeeklySchedule,
)

__all__ = [
    "ActionKind",
    "CleanDisk",
    "CleanRam",
    "ConditionSchedule",
    "DailySchedule",
    "DiskCleaningOptions",
    "IntervalSchedule",
    "LastResult",
    "Outcome",
    "RunRecord",
    "Schedule",
    "SchedulerSettings",
    "SchedulerStatus",
    "StartupSchedule",
    "SystemMetrics",
    "Task",
    "TaskDocument",
    "TaskDraft",
    "TaskPatch",
    "TaskStats",
    "ToggleDefender",
    "WeeklySchedule",
]
