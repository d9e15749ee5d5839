"""Disk cleaning categories -- where reclaimable files live and how big they are.

Locations are glob patterns built from environment variables (TEMP,
LOCALAPPDATA, WINDIR, ...). A pattern whose variable is not set is skipped,
so the scanner degrades to "nothing found" on machines without them.
The recycle bin is only measured here; emptying it goes through PowerShell.
"""

from __future__ import annotations

import glob
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from core.models.tasks import DiskCleaningOptions

logger = logging.getLogger(__name__)

MB = 1024 * 1024

LOCATIONS: dict[str, tuple[str, ...]] = {
    "temp_files": (
        "{TEMP}/*",
        "{LOCALAPPDATA}/Temp/*",
        "{WINDIR}/Temp/*",
    ),
    "browser_cache": (
        "{LOCALAPPDATA}/Google/Chrome/User Data/Default/Cache/*",
        "{LOCALAPPDATA}/Google/Chrome/User Data/Default/Code Cache/*",
        "{LOCALAPPDATA}/Microsoft/Edge/User Data/Default/Cache/*",
        "{LOCALAPPDATA}/Microsoft/Edge/User Data/Default/Code Cache/*",
        "{LOCALAPPDATA}/Mozilla/Firefox/Profiles/*/cache2/*",
    ),
    "thumbnails": (
        "{LOCALAPPDATA}/Microsoft/Windows/Explorer/thumbcache_*.db",
        "{LOCALAPPDATA}/Microsoft/Windows/Explorer/iconcache_*.db",
    ),
    "recycle_bin": (
        "{SystemDrive}/$Recycle.Bin/*/*",
    ),
    "system_cache": (
        "{WINDIR}/Prefetch/*",
        "{LOCALAPPDATA}/D3DSCache/*",
        "{LOCALAPPDATA}/CrashDumps/*",
    ),
    "windows_logs": (
        "{WINDIR}/Logs/CBS/*.log",
        "{LOCALAPPDATA}/Microsoft/Windows/WER/*",
    ),
    "downloads": (
        "{USERPROFILE}/Downloads/*",
    ),
}


@dataclass
class DiskScan:
    """Reclaimable files per category."""

    files: dict[str, list[Path]] = field(default_factory=dict)
    sizes: dict[str, int] = field(default_factory=dict)
    unreadable: int = 0

    @property
    def total_bytes(self) -> int:
        return sum(self.sizes.values())

    @property
    def total_mb(self) -> float:
        return self.total_bytes / MB

    def summary(self) -> str:
        parts = [f"{name} {size / MB:.1f} MB" for name, size in self.sizes.items() if size]
        return ", ".join(parts) or "nothing found"


def category_patterns(category: str, env: Mapping[str, str] | None = None) -> list[str]:
    """Expand the glob patterns of one category against `env`."""
    env = os.environ if env is None else env
    patterns = []
    for template in LOCATIONS[category]:
        try:
            patterns.append(template.format_map(env))
        except KeyError:
            continue
    return patterns


def _iter_files(entry: str):
    if os.path.isfile(entry):
        yield Path(entry)
        return
    for root, _dirs, files in os.walk(entry):
        for name in files:
            yield Path(root) / name


def scan(
    options: DiskCleaningOptions,
    env: Mapping[str, str] | None = None,
    now: float | None = None,
) -> DiskScan:
    """Walk every selected category and sum what could be deleted.

    Files modified within `preserve_recent_days` are left out. A file
    reachable from two patterns is counted once.
    """
    now = time.time() if now is None else now
    cutoff = None
    if options.preserve_recent_days:
        cutoff = now - options.preserve_recent_days * 86400

    result = DiskScan()
    seen: set[str] = set()
    for category in options.categories:
        files: list[Path] = []
        size = 0
        for pattern in category_patterns(category, env):
            for entry in glob.glob(pattern):
                for path in _iter_files(entry):
                    key = os.path.normcase(os.path.abspath(path))
                    if key in seen:
                        continue
                    seen.add(key)
                    try:
                        stat = path.stat()
                    except OSError:
                        result.unreadable += 1
                        continue
                    if cutoff is not None and stat.st_mtime >= cutoff:
                        continue
                    files.append(path)
                    size += stat.st_size
        result.files[category] = files
        result.sizes[category] = size
    return result


def delete_files(paths: list[Path]) -> tuple[int, int]:
    """Delete files one by one. Returns (bytes freed, files skipped).

    Files in use or without permission are skipped and logged.
    """
    freed = 0
    skipped = 0
    for path in paths:
        try:
            size = path.stat().st_size
            os.remove(path)
            freed += size
        except FileNotFoundError:
            continue
        except OSError as e:
            skipped += 1
            logger.warning("Could not delete %s: %s", path, e)
    return freed, skipped
