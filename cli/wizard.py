"""Interactive task wizard -- guides the user through creating a task.

Uses questionary for arrow-key navigation, checkboxes, and text input.
The answers are turned into a plain draft dict; validation happens in the
task store like for any other caller.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import questionary
from questionary import Choice

from cli.banner import print_banner
from core.clock import resolve_timezone
from core.config import AppConfig, write_default_config
from core.models.tasks import (
    DISK_THRESHOLD_MAX_MB,
    DISK_THRESHOLD_MIN_MB,
    INTERVAL_MAX_MINUTES,
    INTERVAL_MIN_MINUTES,
    WEEKDAYS,
)

# Questionary style
STYLE = questionary.Style([
    ("qmark", "fg:cyan bold"),
    ("question", "fg:white bold"),
    ("answer", "fg:green"),
    ("pointer", "fg:cyan bold"),
    ("highlighted", "fg:cyan bold"),
    ("selected", "fg:green"),
    ("instruction", "fg:gray italic"),
])

ACTION_CHOICES = [
    Choice("Clean RAM", value="clean_ram"),
    Choice("Clean disk", value="clean_disk"),
    Choice("Toggle Windows Defender", value="toggle_defender"),
]

CATEGORY_CHOICES = [
    ("temp_files", "Temporary files", True),
    ("browser_cache", "Browser cache", True),
    ("thumbnails", "Thumbnail cache", True),
    ("recycle_bin", "Recycle bin", False),
    ("system_cache", "System cache", False),
    ("windows_logs", "Windows logs", False),
    ("downloads", "Downloads folder", False),
]


def draft_from_answers(answers: dict[str, Any]) -> dict[str, Any]:
    """Turn wizard answers into a task draft dict."""
    kind = answers["action"]
    if kind == "clean_disk":
        selected = set(answers.get("categories") or [])
        options: dict[str, Any] = {name: name in selected for name, _, _ in CATEGORY_CHOICES}
        options["size_threshold_mb"] = int(answers.get("size_threshold_mb", 100))
        if answers.get("preserve_recent_days"):
            options["preserve_recent_days"] = int(answers["preserve_recent_days"])
        options["dry_run"] = bool(answers.get("dry_run", False))
        action: dict[str, Any] = {"kind": kind, "options": options}
    elif kind == "toggle_defender":
        action = {
            "kind": kind,
            "enable": bool(answers.get("enable", False)),
            "permanent": bool(answers.get("permanent", False)),
        }
    else:
        action = {"kind": kind}

    schedule_type = answers["schedule"]
    schedule: dict[str, Any] = {"type": schedule_type}
    if schedule_type == "interval":
        schedule["minutes"] = int(answers["minutes"])
    elif schedule_type in ("daily", "weekly"):
        schedule["time"] = answers["time"]
        if schedule_type == "weekly":
            schedule["weekday"] = answers["weekday"]
    elif schedule_type == "on_condition":
        schedule["metric"] = answers.get("metric", "ram_usage_percent")
        schedule["comparison"] = answers.get("comparison", "ge")
        schedule["threshold"] = float(answers["threshold"])
        if answers.get("cooldown_minutes"):
            schedule["cooldown_minutes"] = int(answers["cooldown_minutes"])

    return {
        "name": answers["name"],
        "description": answers.get("description", ""),
        "action": action,
        "schedule": schedule,
        "enabled": bool(answers.get("enabled", True)),
    }


def _int_in_range(low: int, high: int, optional: bool = False):
    def check(text: str) -> bool | str:
        if optional and not text.strip():
            return True
        try:
            value = int(text)
        except ValueError:
            return "Enter a whole number"
        if not low <= value <= high:
            return f"Must be between {low} and {high}"
        return True
    return check


def _time_of_day(text: str) -> bool | str:
    parts = text.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        return "Use HH:MM"
    hour, minute = int(parts[0]), int(parts[1])
    if hour > 23 or minute > 59:
        return "Use HH:MM"
    return True


def _known_timezone(text: str) -> bool | str:
    try:
        resolve_timezone(text)
    except ValueError as e:
        return str(e)
    return True


def _ask(question: questionary.Question) -> Any:
    value = question.ask()
    if value is None:
        _abort()
    return value


def _abort() -> None:
    """User pressed Ctrl+C or cancelled."""
    print("\n  Cancelled.\n")
    sys.exit(0)


def prompt_task() -> dict[str, Any]:
    """Ask for every field of a new task and return a draft dict."""
    answers: dict[str, Any] = {}
    answers["name"] = _ask(questionary.text(
        "Task name:", validate=lambda t: bool(t.strip()) or "Name is required", style=STYLE,
    ))
    answers["description"] = _ask(questionary.text("Description (optional):", style=STYLE))
    answers["action"] = _ask(questionary.select("What should it do?", choices=ACTION_CHOICES, style=STYLE))

    if answers["action"] == "clean_disk":
        answers["categories"] = _ask(questionary.checkbox(
            "Categories to clean:",
            choices=[Choice(label, value=name, checked=on) for name, label, on in CATEGORY_CHOICES],
            validate=lambda sel: bool(sel) or "Select at least one category",
            instruction="(use SPACE to select, ENTER to confirm)",
            style=STYLE,
        ))
        answers["size_threshold_mb"] = _ask(questionary.text(
            f"Only clean when at least this many MB can be freed ({DISK_THRESHOLD_MIN_MB}-{DISK_THRESHOLD_MAX_MB}):",
            default="100",
            validate=_int_in_range(DISK_THRESHOLD_MIN_MB, DISK_THRESHOLD_MAX_MB),
            style=STYLE,
        ))
        answers["preserve_recent_days"] = _ask(questionary.text(
            "Keep files newer than N days (blank = delete all):",
            validate=_int_in_range(0, 3650, optional=True),
            style=STYLE,
        ))
        answers["dry_run"] = _ask(questionary.confirm(
            "Dry run (report only, delete nothing)?", default=False, style=STYLE,
        ))
    elif answers["action"] == "toggle_defender":
        answers["enable"] = _ask(questionary.select(
            "Defender real-time protection:",
            choices=[Choice("Disable", value=False), Choice("Enable", value=True)],
            style=STYLE,
        ))
        answers["permanent"] = _ask(questionary.confirm(
            "Make it permanent (survives reboot)?", default=False, style=STYLE,
        ))

    schedule_choices = [
        Choice("At startup", value="startup"),
        Choice("Every N minutes", value="interval"),
        Choice("Daily", value="daily"),
        Choice("Weekly", value="weekly"),
    ]
    # Defender toggles cannot be condition-triggered
    if answers["action"] != "toggle_defender":
        schedule_choices.append(Choice("When a threshold is crossed", value="on_condition"))
    answers["schedule"] = _ask(questionary.select("When?", choices=schedule_choices, style=STYLE))

    if answers["schedule"] == "interval":
        answers["minutes"] = _ask(questionary.text(
            f"Minutes between runs ({INTERVAL_MIN_MINUTES}-{INTERVAL_MAX_MINUTES}):",
            default="60",
            validate=_int_in_range(INTERVAL_MIN_MINUTES, INTERVAL_MAX_MINUTES),
            style=STYLE,
        ))
    elif answers["schedule"] in ("daily", "weekly"):
        if answers["schedule"] == "weekly":
            answers["weekday"] = _ask(questionary.select(
                "Day of the week:", choices=list(WEEKDAYS), style=STYLE,
            ))
        answers["time"] = _ask(questionary.text(
            "Time of day (HH:MM):", default="02:00", validate=_time_of_day, style=STYLE,
        ))
    elif answers["schedule"] == "on_condition":
        metrics = [Choice("RAM usage %", value="ram_usage_percent")]
        if answers["action"] == "clean_disk":
            metrics += [
                Choice("Disk usage %", value="disk_usage_percent"),
                Choice("Reclaimable disk MB", value="cleanable_disk_mb"),
            ]
        answers["metric"] = _ask(questionary.select("Metric:", choices=metrics, style=STYLE))
        high = 100 if answers["metric"].endswith("_percent") else 1_000_000
        answers["threshold"] = _ask(questionary.text(
            "Run when it reaches:", default="85", validate=_int_in_range(0, high), style=STYLE,
        ))
        answers["cooldown_minutes"] = _ask(questionary.text(
            "Minimum minutes between runs (blank = default):",
            validate=_int_in_range(1, 10080, optional=True),
            style=STYLE,
        ))

    answers["enabled"] = _ask(questionary.confirm("Enable it now?", default=True, style=STYLE))
    return draft_from_answers(answers)


def run_init(home_dir: Path) -> Path:
    """Write a default config.yaml, asking before overwriting one."""
    print_banner()
    config_path = home_dir / "config.yaml"
    if config_path.exists():
        overwrite = _ask(questionary.confirm(
            f"{config_path} exists. Overwrite with defaults?", default=False, style=STYLE,
        ))
        if not overwrite:
            return config_path

    timezone = _ask(questionary.text(
        "Timezone for daily/weekly tasks (IANA name or 'local'):",
        default="local",
        validate=_known_timezone,
        style=STYLE,
    ))
    config = AppConfig(home_dir=str(home_dir), scheduler={"timezone": timezone.strip() or "local"})
    write_default_config(config_path, config)
    print(f"  Wrote {config_path}")
    return config_path
