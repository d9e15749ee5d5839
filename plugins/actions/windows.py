"""Windows maintenance actions -- RAM trimming, disk cleaning, Defender toggles.

Implements core.protocols.SystemActions. Every method blocks and raises
ActionFailure when the operation cannot be carried out; the dispatcher turns
that into a failed outcome on the task.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from typing import Mapping

import psutil

from core.config import DefenderCommands
from core.errors import ActionFailure
from core.models.tasks import DiskCleaningOptions, Outcome
from plugins.actions import disk
from plugins.actions.disk import MB

logger = logging.getLogger(__name__)

CREATE_NO_WINDOW = 0x08000000
PROCESS_QUERY_INFORMATION = 0x0400
PROCESS_SET_QUOTA = 0x0100

EMPTY_RECYCLE_BIN = "Clear-RecycleBin -Force -ErrorAction SilentlyContinue"


def _require_windows(what: str) -> None:
    if sys.platform != "win32":
        raise ActionFailure(f"{what} is only supported on Windows")


class WindowsMaintenance:
    """Concrete SystemActions for a Windows desktop.

    Usage:
        actions = WindowsMaintenance(powershell="powershell", defender=config.actions.defender)
        actions.clean_disk(DiskCleaningOptions())
    """

    name = "windows"

    def __init__(
        self,
        powershell: str = "powershell",
        defender: DefenderCommands | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._powershell = powershell
        self._defender = defender or DefenderCommands()
        self._env = env

    # ------------------------------------------------------------------
    # RAM
    # ------------------------------------------------------------------

    def clean_ram(self) -> Outcome:
        """Trim the working set of every process we are allowed to open."""
        _require_windows("RAM cleaning")
        import ctypes

        kernel32 = ctypes.windll.kernel32
        psapi = ctypes.windll.psapi

        available_before = psutil.virtual_memory().available
        trimmed = 0
        denied = 0

        for proc in psutil.process_iter(["pid"]):
            pid = proc.info["pid"]
            handle = kernel32.OpenProcess(PROCESS_QUERY_INFORMATION | PROCESS_SET_QUOTA, False, pid)
            if not handle:
                denied += 1
                continue
            try:
                if psapi.EmptyWorkingSet(handle):
                    trimmed += 1
                else:
                    denied += 1
            finally:
                kernel32.CloseHandle(handle)

        if trimmed == 0:
            raise ActionFailure("no process working set could be trimmed (run as administrator?)")

        freed = max(0, psutil.virtual_memory().available - available_before)
        logger.info("Trimmed %d process(es), %d inaccessible", trimmed, denied)
        return Outcome.ok(f"trimmed {trimmed} process(es), freed {freed / MB:.0f} MB")

    # ------------------------------------------------------------------
    # Disk
    # ------------------------------------------------------------------

    def clean_disk(self, options: DiskCleaningOptions) -> Outcome:
        """Delete reclaimable files if there is at least size_threshold_mb of them."""
        found = disk.scan(options, env=self._env)
        total_mb = found.total_mb

        if total_mb < options.size_threshold_mb:
            return Outcome.ok(
                f"skipped: {total_mb:.1f} MB reclaimable, below the {options.size_threshold_mb} MB threshold"
            )
        if options.dry_run:
            return Outcome.ok(f"dry run: would free {total_mb:.1f} MB ({found.summary()})")

        freed: dict[str, int] = {}
        skipped = 0
        for category, files in found.files.items():
            if category == "recycle_bin":
                continue
            freed[category], missed = disk.delete_files(files)
            skipped += missed

        if "recycle_bin" in found.files:
            try:
                self.run_powershell(EMPTY_RECYCLE_BIN)
                freed["recycle_bin"] = found.sizes.get("recycle_bin", 0)
            except ActionFailure as e:
                logger.warning("Recycle bin not emptied: %s", e)

        total_freed = sum(freed.values())
        if total_freed == 0 and found.total_bytes > 0:
            raise ActionFailure(f"nothing could be deleted ({skipped} file(s) in use or protected)")

        parts = ", ".join(f"{name} {size / MB:.1f} MB" for name, size in freed.items() if size)
        message = f"freed {total_freed / MB:.1f} MB"
        if parts:
            message += f" ({parts})"
        if skipped:
            message += f"; {skipped} file(s) skipped"
        return Outcome.ok(message)

    # ------------------------------------------------------------------
    # Defender
    # ------------------------------------------------------------------

    def toggle_defender(self, enable: bool, permanent: bool) -> Outcome:
        _require_windows("Defender control")
        self.run_powershell(self._defender.command_for(enable, permanent))
        state = "enabled" if enable else "disabled"
        scope = "permanently" if permanent else "until reboot"
        return Outcome.ok(f"Defender real-time protection {state} {scope}")

    # ------------------------------------------------------------------
    # PowerShell
    # ------------------------------------------------------------------

    def run_powershell(self, command: str) -> str:
        """Run a hidden, non-interactive PowerShell command and return stdout."""
        args = [
            self._powershell,
            "-NoProfile",
            "-NonInteractive",
            "-WindowStyle",
            "Hidden",
            "-Command",
            command,
        ]
        creationflags = CREATE_NO_WINDOW if sys.platform == "win32" else 0
        try:
            result = subprocess.run(
                args, capture_output=True, text=True, creationflags=creationflags,
            )
        except OSError as e:
            raise ActionFailure(f"could not start {self._powershell}: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise ActionFailure(f"PowerShell exited with code {result.returncode}: {stderr}")
        return result.stdout
