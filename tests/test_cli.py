# tests/test_cli.py

from __future__ import annotations

import argparse
from pathlib import Path

import pytest

from cli import main as cli


@pytest.fixture()
def home(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.delenv("SWEEPER_HOME", raising=False)
    # No service is listening; commands fall back to the task file
    monkeypatch.setattr(cli, "_call_service", lambda *args, **kwargs: None)
    return tmp_path


def args_for(home: Path, **extra) -> argparse.Namespace:
    return argparse.Namespace(home=str(home), **extra)


def test_status_reports_corrupt_file_without_moving_it(home: Path, capsys) -> None:
    tasks_path = home / "tasks.json"
    tasks_path.write_bytes(b"\xff\xfe not json")

    cli.cmd_status(args_for(home))

    assert "unknown" in capsys.readouterr().out
    assert tasks_path.read_bytes() == b"\xff\xfe not json"
    assert list(home.glob("tasks.json.corrupt-*")) == []


def test_tasks_fails_on_corrupt_file_without_moving_it(home: Path, capsys) -> None:
    tasks_path = home / "tasks.json"
    tasks_path.write_text("{broken", encoding="utf-8")

    with pytest.raises(SystemExit):
        cli.cmd_tasks(args_for(home))

    assert "Unreadable task store" in capsys.readouterr().out
    assert tasks_path.read_text(encoding="utf-8") == "{broken"


def test_local_commands_edit_the_task_file(home: Path, capsys) -> None:
    cli.cmd_template(args_for(home, name="daily_disk"))
    cli.cmd_tasks(args_for(home))

    out = capsys.readouterr().out
    assert "Daily Disk Cleanup" in out

    cli.cmd_scheduler(args_for(home, state="off"))
    cli.cmd_status(args_for(home))
    assert "Scheduler: disabled" in capsys.readouterr().out


def test_unknown_task_id_fails(home: Path, capsys) -> None:
    with pytest.raises(SystemExit):
        cli.cmd_enable(args_for(home, task_id="task_missing"))
    assert "Task not found" in capsys.readouterr().out


def test_parser_knows_every_command() -> None:
    parser = cli.build_parser()
    assert parser.parse_args(["template", "ram_monitor"]).name == "ram_monitor"
    assert parser.parse_args(["--home", "/x", "run", "task_1"]).task_id == "task_1"
    assert parser.parse_args(["scheduler", "off"]).state == "off"

