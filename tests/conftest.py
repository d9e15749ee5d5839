# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from core.data.store import TaskStore
from scheduler.dispatcher import ActionDispatcher
from scheduler.runner import Scheduler, eligibility_for

from .fakes import FakeActions, FakeMetrics, FixedClock

# 2024-01-01 is a Monday
START = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def ram_interval(name: str = "RAM", minutes: int = 60, **extra) -> dict:
    return {
        "name": name,
        "action": {"kind": "clean_ram"},
        "schedule": {"type": "interval", "minutes": minutes},
        **extra,
    }


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture()
def tasks_path(tmp_path: Path) -> Path:
    return tmp_path / "tasks.json"


@pytest.fixture()
def store(tasks_path: Path, clock: FixedClock) -> TaskStore:
    """
    Real TaskStore on a tmp file, using the fixed clock and UTC for hints.

    Its persistence is part of what we want to test, so it is not faked.
    """
    store = TaskStore(tasks_path, clock=clock, eligibility=eligibility_for(timezone.utc))
    store.load()
    return store


@pytest.fixture()
def actions() -> FakeActions:
    return FakeActions()


@pytest.fixture()
def metrics() -> FakeMetrics:
    return FakeMetrics()


@pytest.fixture()
def scheduler(store: TaskStore, actions: FakeActions, metrics: FakeMetrics, clock: FixedClock) -> Scheduler:
    return Scheduler(
        store=store,
        dispatcher=ActionDispatcher(actions),
        metrics=metrics,
        tick_interval=0.01,
        tz=timezone.utc,
        clock=clock,
    )
