"""Configuration loader -- reads config.yaml + .env, validates with Pydantic.

Resolves ${ENV_VAR} references in YAML values from environment variables.
Fails fast with clear errors if the config is invalid.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import timedelta, tzinfo
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from core.clock import resolve_timezone
from core.duration import parse_duration

logger = logging.getLogger(__name__)

# Default home directory for all state files
DEFAULT_HOME = Path.home() / ".sweeper"
HOME_ENV_VAR = "SWEEPER_HOME"


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${ENV_VAR} references in config values."""
    if isinstance(value, str):
        pattern = re.compile(r"\$\{(\w+)\}")
        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                logger.warning("Environment variable %s not set", var_name)
                return match.group(0)  # leave unresolved
            return env_value
        return pattern.sub(replacer, value)
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# Config models (Pydantic)
# ---------------------------------------------------------------------------

class ServerConfig(BaseModel):
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8765


class SchedulerConfig(BaseModel):
    timezone: str = "local"
    tick_interval: str = "30s"
    condition_cooldown: str = "30m"
    history_cap: int = Field(default=50, ge=1, le=1000)
    tasks_file: str = "tasks.json"

    @field_validator("tick_interval", "condition_cooldown")
    @classmethod
    def _valid_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        resolve_timezone(value)
        return value

    @property
    def tick_seconds(self) -> float:
        return parse_duration(self.tick_interval).total_seconds()

    @property
    def cooldown(self) -> timedelta:
        return parse_duration(self.condition_cooldown)

    @property
    def tz(self) -> tzinfo | None:
        return resolve_timezone(self.timezone)


class DefenderCommands(BaseModel):
    """PowerShell snippets for each Defender toggle.

    Temporary toggles only touch real-time monitoring. Permanent ones also
    set the policy value, which survives reboots.
    """

    enable_temporary: str = "Set-MpPreference -DisableRealtimeMonitoring $false"
    disable_temporary: str = "Set-MpPreference -DisableRealtimeMonitoring $true"
    enable_permanent: str = (
        "Remove-ItemProperty -Path 'HKLM:\\SOFTWARE\\Policies\\Microsoft\\Windows Defender' "
        "-Name DisableAntiSpyware -ErrorAction SilentlyContinue; "
        "Set-MpPreference -DisableRealtimeMonitoring $false"
    )
    disable_permanent: str = (
        "New-Item -Path 'HKLM:\\SOFTWARE\\Policies\\Microsoft\\Windows Defender' -Force | Out-Null; "
        "Set-ItemProperty -Path 'HKLM:\\SOFTWARE\\Policies\\Microsoft\\Windows Defender' "
        "-Name DisableAntiSpyware -Value 1 -Type DWord; "
        "Set-MpPreference -DisableRealtimeMonitoring $true"
    )

    def command_for(self, enable: bool, permanent: bool) -> str:
        if enable:
            return self.enable_permanent if permanent else self.enable_temporary
        return self.disable_permanent if permanent else self.disable_temporary


class ActionsConfig(BaseModel):
    timeout: str | None = None
    powershell: str = "powershell"
    defender: DefenderCommands = Field(default_factory=DefenderCommands)

    @field_validator("timeout")
    @classmethod
    def _valid_timeout(cls, value: str | None) -> str | None:
        if value is not None:
            parse_duration(value)
        return value

    @property
    def timeout_seconds(self) -> float | None:
        if self.timeout is None:
            return None
        return parse_duration(self.timeout).total_seconds()


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str | None = "sweeper.log"


class AppConfig(BaseModel):
    """Top-level application configuration."""

    home_dir: str = str(DEFAULT_HOME)
    server: ServerConfig = Field(default_factory=ServerConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    actions: ActionsConfig = Field(default_factory=ActionsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def home_path(self) -> Path:
        """Resolved home directory as a Path."""
        return Path(self.home_dir).expanduser()

    @property
    def tasks_path(self) -> Path:
        path = Path(self.scheduler.tasks_file).expanduser()
        return path if path.is_absolute() else self.home_path / path

    @property
    def log_path(self) -> Path | None:
        if not self.logging.file:
            return None
        path = Path(self.logging.file).expanduser()
        return path if path.is_absolute() else self.home_path / path


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def get_home_dir() -> Path:
    return Path(os.environ.get(HOME_ENV_VAR, str(DEFAULT_HOME))).expanduser()


def load_config(
    config_path: str | Path | None = None,
    env_path: str | Path | None = None,
) -> AppConfig:
    """Load configuration from YAML + .env files.

    1. Load .env into environment variables
    2. Load config.yaml and resolve ${ENV_VAR} references
    3. Validate against Pydantic models
    4. Create the home directory if needed
    """
    # Determine paths
    home = get_home_dir()

    if env_path is None:
        env_path = home / ".env"
    if config_path is None:
        config_path = home / "config.yaml"

    env_path = Path(env_path)
    config_path = Path(config_path)

    # Load .env
    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from %s", env_path)
    else:
        logger.debug("No .env file at %s", env_path)

    # Load config.yaml
    raw_config: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            raw_config = yaml.safe_load(f) or {}
        logger.info("Loaded config from %s", config_path)
    else:
        logger.info("No config file at %s, using defaults", config_path)

    # Resolve ${ENV_VAR} references
    resolved = _resolve_env_vars(raw_config)

    # Override home_dir if set via env
    if HOME_ENV_VAR in os.environ:
        resolved["home_dir"] = os.environ[HOME_ENV_VAR]

    # Validate
    config = AppConfig(**resolved)

    config.home_path.mkdir(parents=True, exist_ok=True)

    return config


def write_default_config(config_path: Path, config: AppConfig | None = None) -> Path:
    """Write a config.yaml populated with defaults (used by `sweeper init`)."""
    config = config or AppConfig()
    data = config.model_dump(mode="json")
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return config_path
