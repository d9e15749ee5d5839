"""Quick task templates -- ready-made drafts for common maintenance jobs."""

from __future__ import annotations

from datetime import time
from typing import Callable

from core.errors import ValidationError
from core.models.tasks import (
    CleanDisk,
    CleanRam,
    ConditionSchedule,
    DailySchedule,
    DiskCleaningOptions,
    TaskDraft,
    ToggleDefender,
    WeeklySchedule,
)


def _ram_monitor() -> TaskDraft:
    return TaskDraft(
        name="RAM Cleanup (Threshold)",
        description="Clean RAM when usage reaches 85%",
        action=CleanRam(),
        schedule=ConditionSchedule(metric="ram_usage_percent", comparison="ge", threshold=85),
    )


def _daily_disk() -> TaskDraft:
    return TaskDraft(
        name="Daily Disk Cleanup",
        description="Clean temporary files every night at 02:00",
        action=CleanDisk(options=DiskCleaningOptions(size_threshold_mb=100)),
        schedule=DailySchedule(time=time(2, 0)),
    )


def _weekly_defender_off() -> TaskDraft:
    return TaskDraft(
        name="Weekly Defender Disable",
        description="Turn off real-time protection on Monday mornings",
        action=ToggleDefender(enable=False, permanent=False),
        schedule=WeeklySchedule(weekday="monday", time=time(9, 0)),
    )


TEMPLATES: dict[str, Callable[[], TaskDraft]] = {
    "ram_monitor": _ram_monitor,
    "daily_disk": _daily_disk,
    "weekly_defender_off": _weekly_defender_off,
}


def template_draft(name: str) -> TaskDraft:
    """Return a fresh draft for a template name."""
    factory = TEMPLATES.get(name)
    if factory is None:
        known = ", ".join(sorted(TEMPLATES))
        raise ValidationError("template", f"unknown template {name!r} (known: {known})")
    return factory()
