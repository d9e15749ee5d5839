"""Duration parsing helpers for configuration values."""

from __future__ import annotations

import re
from datetime import timedelta

_PART_RE = re.compile(r"(\d+)\s*([smhd])", re.IGNORECASE)
_FULL_RE = re.compile(r"^\s*(?:\d+\s*[smhd]\s*)+$", re.IGNORECASE)
_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def parse_duration(value: str | int | float | timedelta) -> timedelta:
    """Parse compact duration strings like '30s', '30m', '1h30m'.

    Bare numbers are taken as seconds.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value < 0:
            raise ValueError(f"Invalid duration: {value!r}. Must not be negative.")
        return timedelta(seconds=value)

    text = str(value or "")
    if text.strip().isdigit():
        return timedelta(seconds=int(text.strip()))
    if not _FULL_RE.match(text):
        raise ValueError(f"Invalid duration: {value!r}. Expected '<int><s|m|h|d>[...]'.")

    seconds = sum(
        int(amount) * _UNIT_SECONDS[unit.lower()]
        for amount, unit in _PART_RE.findall(text)
    )
    return timedelta(seconds=seconds)


def format_duration(delta: timedelta) -> str:
    """Render a timedelta back into the compact form, e.g. 5400s -> '1h30m'."""
    total = int(delta.total_seconds())
    if total <= 0:
        return "0s"

    parts = []
    for unit in ("d", "h", "m", "s"):
        size = _UNIT_SECONDS[unit]
        amount, total = divmod(total, size)
        if amount:
            parts.append(f"{amount}{unit}")
    return "".join(parts)
