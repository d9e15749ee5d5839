# tests/test_config.py

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pydantic
import pytest
import yaml

from core.config import AppConfig, load_config, write_default_config


def test_defaults(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("SWEEPER_HOME", str(tmp_path / "home"))
    config = load_config()

    assert config.home_path == tmp_path / "home"
    assert config.home_path.is_dir()
    assert config.server.port == 8765
    assert config.scheduler.tick_seconds == 30
    assert config.scheduler.cooldown == timedelta(minutes=30)
    assert config.scheduler.history_cap == 50
    assert config.scheduler.tz is None
    assert config.tasks_path == tmp_path / "home" / "tasks.json"
    assert config.actions.timeout_seconds is None


def test_yaml_with_env_references(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("SWEEPER_HOME", raising=False)
    # registered so the value load_dotenv sets is undone after the test
    monkeypatch.setenv("SWEEPER_PORT_FROM_ENV", "")
    monkeypatch.delenv("SWEEPER_PORT_FROM_ENV")
    (tmp_path / ".env").write_text("SWEEPER_PORT_FROM_ENV=9999\n", encoding="utf-8")
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({
        "home_dir": str(tmp_path),
        "server": {"port": "${SWEEPER_PORT_FROM_ENV}"},
        "scheduler": {"timezone": "UTC", "tick_interval": "1m", "condition_cooldown": "1h30m"},
        "actions": {"timeout": "5m"},
    }), encoding="utf-8")

    config = load_config(config_path=config_path, env_path=tmp_path / ".env")

    assert config.server.port == 9999
    assert config.scheduler.tick_seconds == 60
    assert config.scheduler.cooldown == timedelta(minutes=90)
    assert config.scheduler.tz is not None
    assert config.actions.timeout_seconds == 300


@pytest.mark.parametrize(
    "scheduler",
    [
        {"timezone": "Mars/Olympus_Mons"},
        {"tick_interval": "soon"},
        {"history_cap": 0},
    ],
)
def test_invalid_values_fail_fast(scheduler: dict) -> None:
    with pytest.raises(pydantic.ValidationError):
        AppConfig(scheduler=scheduler)


def test_defender_commands_are_configurable() -> None:
    config = AppConfig(actions={"defender": {"disable_temporary": "Write-Output off"}})
    assert config.actions.defender.command_for(enable=False, permanent=False) == "Write-Output off"
    assert "DisableAntiSpyware" in config.actions.defender.command_for(enable=False, permanent=True)


def test_write_default_config_round_trips(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("SWEEPER_HOME", raising=False)
    config_path = write_default_config(tmp_path / "config.yaml", AppConfig(home_dir=str(tmp_path)))

    loaded = load_config(config_path=config_path, env_path=tmp_path / "missing.env")
    assert loaded.model_dump() == AppConfig(home_dir=str(tmp_path)).model_dump()
