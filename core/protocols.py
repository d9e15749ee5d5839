"""Core protocols -- the extension points where the scheduler meets the OS.

The core imports these protocols. Plugins implement them.
The core NEVER imports concrete implementations, which keeps the
scheduler testable with in-memory fakes.

All protocols use Python's structural subtyping (typing.Protocol):
if your class has the right methods, it implements the protocol.
No inheritance required.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.models.system import SystemMetrics
from core.models.tasks import DiskCleaningOptions, Outcome


# ---------------------------------------------------------------------------
# 1. SystemActions -- the maintenance operations a task can perform
# ---------------------------------------------------------------------------

@runtime_checkable
class SystemActions(Protocol):
    """Performs the concrete maintenance work.

    Methods are synchronous and may block for a few seconds; the dispatcher
    runs them off the event loop. They may raise -- the dispatcher converts
    any exception into a failed Outcome.

    Default implementation: plugins.actions.windows.WindowsMaintenance.
    """

    def clean_ram(self) -> Outcome:
        """Trim process working sets and report what was freed."""
        ...

    def clean_disk(self, options: DiskCleaningOptions) -> Outcome:
        """Delete reclaimable files in the selected categories."""
        ...

    def toggle_defender(self, enable: bool, permanent: bool) -> Outcome:
        """Turn Windows Defender real-time protection on or off."""
        ...


# ---------------------------------------------------------------------------
# 2. MetricsProvider -- readings for condition schedules
# ---------------------------------------------------------------------------

@runtime_checkable
class MetricsProvider(Protocol):
    """Samples system metrics.

    Default implementation: plugins.metrics.psutil_probe.PsutilMetrics.
    """

    def sample(self, disk_options: DiskCleaningOptions | None = None) -> SystemMetrics:
        """Return current readings.

        `disk_options` is given when a condition needs the reclaimable disk
        size; computing it means scanning directories, so it is skipped
        otherwise.
        """
        ...
