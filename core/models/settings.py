"""Scheduler-wide settings, the persisted task document and status snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from core.models.tasks import Task

DOCUMENT_VERSION = 1


class SchedulerSettings(BaseModel):
    """User-facing switches stored alongside the tasks."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    auto_start_scheduler: bool = True
    startup_delay_seconds: int = Field(default=30, ge=0, le=300)


class TaskDocument(BaseModel):
    """The single JSON document holding every task plus the settings."""

    version: int = DOCUMENT_VERSION
    settings: SchedulerSettings = Field(default_factory=SchedulerSettings)
    tasks: list[Task] = Field(default_factory=list)


class SchedulerStatus(BaseModel):
    """Read-only view of the scheduler loop, refreshed after every tick."""

    enabled: bool
    state: Literal["stopped", "idle", "running"] = "stopped"
    current_task_id: str | None = None
    last_task_id: str | None = None
    last_tick_at: AwareDatetime | None = None
    ticks: int = 0
    tick_interval_seconds: float = 30.0
    started_at: datetime | None = None
