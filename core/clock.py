"""Clock -- the single source of "now" for scheduling decisions.

Production code uses SystemClock (real wall-clock time). Tests inject a
fixed or manually advanced clock so that due-checks are deterministic.

A timezone of None means the machine's local time, including its DST
rules; that is what a desktop user means by "daily at 02:00".
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Resolve a config timezone name; "local" (or empty) gives None."""
    if not name or name.strip().lower() == "local":
        return None
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name!r}") from exc


def to_zone(dt: datetime, tz: tzinfo | None) -> datetime:
    """Express an aware datetime in `tz` (system local time when None)."""
    return dt.astimezone(tz)


def localize(naive: datetime, tz: tzinfo | None) -> datetime:
    """Attach `tz` to a wall-clock datetime (system local time when None)."""
    if tz is None:
        return naive.astimezone()
    return naive.replace(tzinfo=tz)


class Clock(Protocol):
    """Anything that can tell the current time."""

    def now(self) -> datetime:
        """Return the current timezone-aware time."""
        ...


class SystemClock:
    """Real wall-clock time."""

    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz

    @property
    def tz(self) -> tzinfo | None:
        return self._tz

    def now(self) -> datetime:
        if self._tz is None:
            return datetime.now().astimezone()
        return datetime.now(self._tz)
