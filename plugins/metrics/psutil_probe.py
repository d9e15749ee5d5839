"""System metrics from psutil -- feeds condition schedules."""

from __future__ import annotations

import logging
import os
from typing import Mapping

import psutil

from core.models.system import SystemMetrics
from core.models.tasks import DiskCleaningOptions
from plugins.actions import disk

logger = logging.getLogger(__name__)


def system_drive(env: Mapping[str, str] | None = None) -> str:
    env = os.environ if env is None else env
    drive = env.get("SystemDrive")
    return f"{drive}\\" if drive else os.path.abspath(os.sep)


class PsutilMetrics:
    """Implements core.protocols.MetricsProvider.

    A reading that fails is reported as None so the evaluator can skip the
    task instead of guessing.
    """

    name = "psutil"

    def __init__(self, disk_path: str | None = None, env: Mapping[str, str] | None = None) -> None:
        self._env = env
        self._disk_path = disk_path or system_drive(env)

    def sample(self, disk_options: DiskCleaningOptions | None = None) -> SystemMetrics:
        metrics = SystemMetrics()

        try:
            metrics.ram_usage_percent = psutil.virtual_memory().percent
        except Exception as e:
            logger.warning("Could not read memory usage: %s", e)

        try:
            metrics.disk_usage_percent = psutil.disk_usage(self._disk_path).percent
        except Exception as e:
            logger.warning("Could not read disk usage of %s: %s", self._disk_path, e)

        if disk_options is not None:
            try:
                metrics.cleanable_disk_mb = disk.scan(disk_options, env=self._env).total_mb
            except Exception as e:
                logger.warning("Could not measure reclaimable disk space: %s", e)

        return metrics
