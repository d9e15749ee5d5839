"""System metric snapshot consumed by condition schedules."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class SystemMetrics(BaseModel):
    """Point-in-time readings. A metric that could not be read is None."""

    ram_usage_percent: float | None = None
    disk_usage_percent: float | None = None
    cleanable_disk_mb: float | None = None
    sampled_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def value(self, metric: str) -> float | None:
        return getattr(self, metric, None)
