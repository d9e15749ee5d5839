"""Task model -- maintenance tasks, their actions, schedules and run statistics.

Actions and schedules are closed tagged unions: the `kind` / `type`
discriminator selects exactly one variant, so replacing a schedule with a
different variant never carries stale parameters over.
"""

from __future__ import annotations

from datetime import datetime, timezone
from datetime import time as dt_time
from typing import Annotated, Literal, Union
from uuid import uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator, model_validator

Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
WEEKDAYS: tuple[str, ...] = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)

Metric = Literal["ram_usage_percent", "disk_usage_percent", "cleanable_disk_mb"]
Comparison = Literal["gt", "ge", "lt", "le"]

DISK_THRESHOLD_MIN_MB = 50
DISK_THRESHOLD_MAX_MB = 2000
INTERVAL_MIN_MINUTES = 5
INTERVAL_MAX_MINUTES = 1440


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return f"task_{uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class DiskCleaningOptions(BaseModel):
    """Which categories the disk cleaner touches and when it bothers to."""

    model_config = ConfigDict(extra="forbid")

    temp_files: bool = True
    browser_cache: bool = True
    thumbnails: bool = True
    recycle_bin: bool = False
    system_cache: bool = False
    windows_logs: bool = False
    downloads: bool = False

    # Only clean when the reclaimable total reaches this many MB
    size_threshold_mb: int = Field(
        default=100, ge=DISK_THRESHOLD_MIN_MB, le=DISK_THRESHOLD_MAX_MB,
    )
    preserve_recent_days: int | None = Field(default=None, ge=0)
    dry_run: bool = False

    @property
    def categories(self) -> list[str]:
        """Names of the selected cleaning categories, in a stable order."""
        names = (
            "temp_files", "browser_cache", "thumbnails", "recycle_bin",
            "system_cache", "windows_logs", "downloads",
        )
        return [name for name in names if getattr(self, name)]

    @model_validator(mode="after")
    def _require_category(self) -> DiskCleaningOptions:
        if not self.categories:
            raise ValueError("select at least one cleaning category")
        return self


class CleanRam(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["clean_ram"] = "clean_ram"


class CleanDisk(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["clean_disk"] = "clean_disk"
    options: DiskCleaningOptions = Field(default_factory=DiskCleaningOptions)


class ToggleDefender(BaseModel):
    """Enable or disable Windows Defender.

    A temporary toggle only flips real-time monitoring; a permanent one also
    writes the policy so the state survives a reboot.
    """

    model_config = ConfigDict(extra="forbid")

    kind: Literal["toggle_defender"] = "toggle_defender"
    enable: bool
    permanent: bool = False


ActionKind = Annotated[
    Union[CleanRam, CleanDisk, ToggleDefender],
    Field(discriminator="kind"),
]


def describe_action(action: CleanRam | CleanDisk | ToggleDefender) -> str:
    """Short human-readable label used in logs and the CLI."""
    if isinstance(action, CleanRam):
        return "clean RAM"
    if isinstance(action, CleanDisk):
        cats = ", ".join(action.options.categories)
        return f"clean disk [{cats}] >= {action.options.size_threshold_mb} MB"
    verb = "enable" if action.enable else "disable"
    scope = "permanently" if action.permanent else "temporarily"
    return f"{verb} Defender {scope}"


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------

class StartupSchedule(BaseModel):
    """Run once per process lifetime, on the first check after launch."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["startup"] = "startup"


class IntervalSchedule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["interval"] = "interval"
    minutes: int = Field(ge=INTERVAL_MIN_MINUTES, le=INTERVAL_MAX_MINUTES)


class DailySchedule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["daily"] = "daily"
    time: dt_time


class WeeklySchedule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["weekly"] = "weekly"
    weekday: Weekday
    time: dt_time

    @field_validator("weekday", mode="before")
    @classmethod
    def _lower_weekday(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


class ConditionSchedule(BaseModel):
    """Run when a system metric crosses a threshold, at most once per cooldown.

    cooldown_minutes=None means "use the configured default".
    """

    model_config = ConfigDict(extra="forbid")

    type: Literal["on_condition"] = "on_condition"
    metric: Metric = "ram_usage_percent"
    comparison: Comparison = "ge"
    threshold: float = Field(ge=0)
    cooldown_minutes: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _percent_range(self) -> ConditionSchedule:
        if self.metric.endswith("_percent") and self.threshold > 100:
            raise ValueError("percent threshold must be between 0 and 100")
        return self


Schedule = Annotated[
    Union[StartupSchedule, IntervalSchedule, DailySchedule, WeeklySchedule, ConditionSchedule],
    Field(discriminator="type"),
]


def describe_schedule(schedule: StartupSchedule | IntervalSchedule | DailySchedule
                      | WeeklySchedule | ConditionSchedule) -> str:
    if isinstance(schedule, StartupSchedule):
        return "on startup"
    if isinstance(schedule, IntervalSchedule):
        return f"every {schedule.minutes} min"
    if isinstance(schedule, DailySchedule):
        return f"daily at {schedule.time.strftime('%H:%M')}"
    if isinstance(schedule, WeeklySchedule):
        return f"{schedule.weekday} at {schedule.time.strftime('%H:%M')}"
    symbols = {"gt": ">", "ge": ">=", "lt": "<", "le": "<="}
    return f"when {schedule.metric} {symbols[schedule.comparison]} {schedule.threshold:g}"


def check_action_schedule(action: object, schedule: object) -> None:
    """Cross-field rules that neither union can check on its own."""
    if isinstance(schedule, ConditionSchedule):
        if isinstance(action, ToggleDefender):
            raise ValueError("condition schedules are only available for cleaning actions")
        if schedule.metric == "cleanable_disk_mb" and not isinstance(action, CleanDisk):
            raise ValueError("cleanable_disk_mb can only trigger a disk cleaning task")


# ---------------------------------------------------------------------------
# Outcomes and statistics
# ---------------------------------------------------------------------------

class Outcome(BaseModel):
    """Result of running one action."""

    success: bool
    message: str = ""

    @classmethod
    def ok(cls, message: str = "") -> Outcome:
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, message: str) -> Outcome:
        return cls(success=False, message=message)


class LastResult(BaseModel):
    success: bool
    message: str = ""
    at: AwareDatetime


class RunRecord(BaseModel):
    """One entry of a task's bounded run history."""

    at: AwareDatetime
    success: bool
    message: str = ""
    duration_ms: int = 0


class TaskStats(BaseModel):
    runs_total: int = Field(default=0, ge=0)
    successes: int = Field(default=0, ge=0)
    failures: int = Field(default=0, ge=0)
    consecutive_failures: int = Field(default=0, ge=0)
    last_result: LastResult | None = None


# ---------------------------------------------------------------------------
# Task, draft and patch
# ---------------------------------------------------------------------------

def _clean_name(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("name must not be empty")
    return value


class TaskDraft(BaseModel):
    """Everything a caller may supply when creating a task."""

    model_config = ConfigDict(extra="forbid")

    name: str
    description: str = ""
    action: ActionKind
    schedule: Schedule
    enabled: bool = True

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _clean_name(value)

    @model_validator(mode="after")
    def _cross_check(self) -> TaskDraft:
        check_action_schedule(self.action, self.schedule)
        return self


class TaskPatch(BaseModel):
    """Partial update. `action` and `schedule` are replaced as a whole."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    description: str | None = None
    action: ActionKind | None = None
    schedule: Schedule | None = None
    enabled: bool | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class Task(BaseModel):
    """A scheduled maintenance task stored in the task document."""

    id: str = Field(default_factory=new_task_id, min_length=1)
    name: str
    description: str = ""
    action: ActionKind
    schedule: Schedule
    enabled: bool = True

    created_at: AwareDatetime = Field(default_factory=_utcnow)
    updated_at: AwareDatetime = Field(default_factory=_utcnow)

    # Execution state
    last_run_at: AwareDatetime | None = None
    next_eligible_at: AwareDatetime | None = None
    stats: TaskStats = Field(default_factory=TaskStats)
    history: list[RunRecord] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _clean_name(value)

    @model_validator(mode="after")
    def _cross_check(self) -> Task:
        check_action_schedule(self.action, self.schedule)
        return self

    @classmethod
    def from_draft(cls, draft: TaskDraft, *, now: datetime | None = None) -> Task:
        now = now or _utcnow()
        return cls(
            name=draft.name,
            description=draft.description,
            action=draft.action,
            schedule=draft.schedule,
            enabled=draft.enabled,
            created_at=now,
            updated_at=now,
        )
