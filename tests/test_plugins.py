# tests/test_plugins.py

from __future__ import annotations

import os
import subprocess
import sys
import time
from pathlib import Path

import pytest

from core.errors import ActionFailure
from core.models.tasks import DiskCleaningOptions
from plugins.actions import disk
from plugins.actions.disk import MB
from plugins.actions.windows import WindowsMaintenance
from plugins.metrics.psutil_probe import PsutilMetrics

only_temp = dict(browser_cache=False, thumbnails=False)


@pytest.fixture()
def temp_dir(tmp_path: Path) -> Path:
    path = tmp_path / "Temp"
    (path / "nested").mkdir(parents=True)
    return path


def write(path: Path, size: int) -> Path:
    with open(path, "wb") as f:
        f.truncate(size)
    return path


def test_patterns_skip_unset_variables() -> None:
    assert disk.category_patterns("temp_files", {"TEMP": "/t"}) == ["/t/*"]
    assert disk.category_patterns("browser_cache", {}) == []


def test_scan_sums_selected_categories(temp_dir: Path) -> None:
    write(temp_dir / "a.tmp", 1000)
    write(temp_dir / "nested" / "b.tmp", 500)
    env = {"TEMP": str(temp_dir), "LOCALAPPDATA": str(temp_dir.parent)}

    # LOCALAPPDATA/Temp is the same folder as TEMP here; files count once
    result = disk.scan(DiskCleaningOptions(**only_temp), env=env)

    assert result.sizes == {"temp_files": 1500}
    assert len(result.files["temp_files"]) == 2


def test_scan_preserves_recent_files(temp_dir: Path) -> None:
    old = write(temp_dir / "old.log", 100)
    write(temp_dir / "new.log", 200)
    week_ago = time.time() - 7 * 86400
    os.utime(old, (week_ago, week_ago))

    result = disk.scan(
        DiskCleaningOptions(preserve_recent_days=2, **only_temp),
        env={"TEMP": str(temp_dir)},
    )

    assert result.files["temp_files"] == [old]
    assert result.total_bytes == 100


def test_clean_disk_below_threshold_is_skipped(temp_dir: Path) -> None:
    keep = write(temp_dir / "small.tmp", 10)
    actions = WindowsMaintenance(env={"TEMP": str(temp_dir)})

    outcome = actions.clean_disk(DiskCleaningOptions(size_threshold_mb=50, **only_temp))

    assert outcome.success
    assert outcome.message.startswith("skipped")
    assert keep.exists()


def test_clean_disk_dry_run_deletes_nothing(temp_dir: Path) -> None:
    big = write(temp_dir / "big.tmp", 60 * MB)
    actions = WindowsMaintenance(env={"TEMP": str(temp_dir)})

    outcome = actions.clean_disk(DiskCleaningOptions(size_threshold_mb=50, dry_run=True, **only_temp))

    assert outcome.success
    assert "would free 60.0 MB" in outcome.message
    assert big.exists()


def test_clean_disk_deletes_when_over_threshold(temp_dir: Path) -> None:
    big = write(temp_dir / "big.tmp", 60 * MB)
    nested = write(temp_dir / "nested" / "x.tmp", MB)
    actions = WindowsMaintenance(env={"TEMP": str(temp_dir)})

    outcome = actions.clean_disk(DiskCleaningOptions(size_threshold_mb=50, **only_temp))

    assert outcome.success
    assert outcome.message.startswith("freed 61.0 MB")
    assert not big.exists()
    assert not nested.exists()


def test_powershell_failure_raises(monkeypatch) -> None:
    def fake_run(args, **kwargs):
        assert args[1:5] == ["-NoProfile", "-NonInteractive", "-WindowStyle", "Hidden"]
        return subprocess.CompletedProcess(args, 1, "", "Access is denied.")

    monkeypatch.setattr("plugins.actions.windows.subprocess.run", fake_run)

    with pytest.raises(ActionFailure, match="code 1: Access is denied"):
        WindowsMaintenance().run_powershell("Set-MpPreference -DisableRealtimeMonitoring $true")


def test_missing_powershell_raises() -> None:
    actions = WindowsMaintenance(powershell="definitely-not-a-shell-binary")
    with pytest.raises(ActionFailure, match="could not start"):
        actions.run_powershell("Get-Date")


@pytest.mark.skipif(sys.platform == "win32", reason="exercises the non-Windows guard")
def test_windows_only_actions_fail_elsewhere() -> None:
    actions = WindowsMaintenance()
    with pytest.raises(ActionFailure, match="only supported on Windows"):
        actions.clean_ram()
    with pytest.raises(ActionFailure, match="only supported on Windows"):
        actions.toggle_defender(enable=False, permanent=False)


def test_psutil_metrics_sample(temp_dir: Path) -> None:
    write(temp_dir / "a.tmp", 2 * MB)
    probe = PsutilMetrics(disk_path=str(temp_dir), env={"TEMP": str(temp_dir)})

    metrics = probe.sample(DiskCleaningOptions(**only_temp))

    assert 0 <= metrics.ram_usage_percent <= 100
    assert 0 <= metrics.disk_usage_percent <= 100
    assert metrics.cleanable_disk_mb == pytest.approx(2.0)
    assert probe.sample().cleanable_disk_mb is None
