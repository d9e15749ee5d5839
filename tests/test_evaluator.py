# tests/test_evaluator.py

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

import pytest

from core.models.system import SystemMetrics
from core.models.tasks import (
    CleanDisk,
    CleanRam,
    ConditionSchedule,
    DailySchedule,
    IntervalSchedule,
    Outcome,
    StartupSchedule,
    Task,
    ToggleDefender,
    WeeklySchedule,
)
from scheduler.evaluator import evaluate, next_eligible_at, next_occurrence
from scheduler.recorder import record_run

from .conftest import START

UTC = timezone.utc


def make_task(schedule, action=None, **extra) -> Task:
    return Task(
        name="t",
        action=action or CleanRam(),
        schedule=schedule,
        created_at=extra.pop("created_at", START),
        **extra,
    )


@pytest.mark.parametrize(
    "schedule",
    [
        StartupSchedule(),
        IntervalSchedule(minutes=5),
        DailySchedule(time=time(2, 0)),
        WeeklySchedule(weekday="monday", time=time(9, 0)),
        ConditionSchedule(threshold=10),
    ],
)
def test_disabled_task_is_never_due(schedule) -> None:
    task = make_task(schedule, enabled=False)
    metrics = SystemMetrics(ram_usage_percent=99)
    for days in (0, 1, 8, 400):
        decision = evaluate(task, START + timedelta(days=days), tz=UTC, metrics=metrics)
        assert decision.verdict == "not_due"
        assert decision.reason == "disabled"


# ---------------------------------------------------------------------------
# Interval
# ---------------------------------------------------------------------------

def test_interval_never_run_is_due() -> None:
    task = make_task(IntervalSchedule(minutes=60))
    assert evaluate(task, START).is_due


def test_interval_due_exactly_at_boundary() -> None:
    t0 = START
    task = make_task(IntervalSchedule(minutes=60), last_run_at=t0)

    assert not evaluate(task, t0 + timedelta(minutes=59, seconds=59)).is_due
    assert evaluate(task, t0 + timedelta(minutes=60)).is_due
    assert evaluate(task, t0 + timedelta(days=3)).is_due


def test_cached_hint_short_circuits() -> None:
    task = make_task(
        IntervalSchedule(minutes=5),
        last_run_at=START - timedelta(hours=1),
        next_eligible_at=START + timedelta(minutes=1),
    )
    decision = evaluate(task, START)
    assert decision.verdict == "not_due"
    assert "next run" in decision.reason


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

def test_startup_due_once_per_process() -> None:
    task = make_task(StartupSchedule(), last_run_at=START - timedelta(minutes=1))
    assert evaluate(task, START, started_this_process=False).is_due
    assert not evaluate(task, START, started_this_process=True).is_due


# ---------------------------------------------------------------------------
# Daily / weekly
# ---------------------------------------------------------------------------

def test_daily_first_occurrence_after_creation() -> None:
    task = make_task(DailySchedule(time=time(2, 0)))  # created Monday 10:00

    assert not evaluate(task, datetime(2024, 1, 2, 1, 59, tzinfo=UTC), tz=UTC).is_due
    assert evaluate(task, datetime(2024, 1, 2, 2, 0, tzinfo=UTC), tz=UTC).is_due


def test_daily_runs_once_per_day() -> None:
    ran_at = datetime(2024, 1, 2, 2, 0, 30, tzinfo=UTC)
    task = make_task(DailySchedule(time=time(2, 0)), last_run_at=ran_at)

    assert not evaluate(task, ran_at + timedelta(minutes=1), tz=UTC).is_due
    assert not evaluate(task, datetime(2024, 1, 3, 1, 59, tzinfo=UTC), tz=UTC).is_due
    assert evaluate(task, datetime(2024, 1, 3, 2, 0, tzinfo=UTC), tz=UTC).is_due


def test_daily_catch_up_fires_once_after_downtime() -> None:
    task = make_task(
        DailySchedule(time=time(2, 0)),
        last_run_at=datetime(2024, 1, 1, 2, 0, tzinfo=UTC),
    )
    # Machine was off for a week
    back = datetime(2024, 1, 8, 10, 0, tzinfo=UTC)
    assert evaluate(task, back, tz=UTC).is_due

    record_run(task, Outcome.ok(), back)
    assert not evaluate(task, back + timedelta(seconds=30), tz=UTC).is_due
    assert next_eligible_at(task, tz=UTC) == datetime(2024, 1, 9, 2, 0, tzinfo=UTC)


def test_weekly_only_on_its_weekday() -> None:
    task = make_task(WeeklySchedule(weekday="monday", time=time(9, 0)))  # created Monday 10:00

    sunday = datetime(2024, 1, 7, 9, 0, tzinfo=UTC)
    monday = datetime(2024, 1, 8, 9, 0, tzinfo=UTC)
    assert not evaluate(task, sunday, tz=UTC).is_due
    assert not evaluate(task, monday - timedelta(seconds=1), tz=UTC).is_due
    assert evaluate(task, monday, tz=UTC).is_due


def test_weekly_same_day_later_time() -> None:
    schedule = WeeklySchedule(weekday="monday", time=time(12, 0))
    assert next_occurrence(schedule, START, UTC) == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def test_daily_time_is_interpreted_in_configured_timezone() -> None:
    plus_two = timezone(timedelta(hours=2))
    task = make_task(DailySchedule(time=time(2, 0)), created_at=datetime(2024, 1, 1, 12, 0, tzinfo=UTC))

    # 02:00 at UTC+2 is 00:00 UTC
    assert not evaluate(task, datetime(2024, 1, 1, 23, 59, tzinfo=UTC), tz=plus_two).is_due
    assert evaluate(task, datetime(2024, 1, 2, 0, 0, tzinfo=UTC), tz=plus_two).is_due


# ---------------------------------------------------------------------------
# On condition
# ---------------------------------------------------------------------------

def test_condition_without_metrics_is_skipped() -> None:
    task = make_task(ConditionSchedule(threshold=85))
    decision = evaluate(task, START, metrics=None)
    assert decision.verdict == "skipped"

    decision = evaluate(task, START, metrics=SystemMetrics(ram_usage_percent=None))
    assert decision.verdict == "skipped"


def test_condition_not_met_is_not_due() -> None:
    task = make_task(ConditionSchedule(threshold=85))
    assert evaluate(task, START, metrics=SystemMetrics(ram_usage_percent=84.9)).verdict == "not_due"
    assert evaluate(task, START, metrics=SystemMetrics(ram_usage_percent=85)).is_due


def test_condition_comparisons() -> None:
    below = make_task(
        ConditionSchedule(metric="disk_usage_percent", comparison="lt", threshold=20),
        action=CleanDisk(),
    )
    assert evaluate(below, START, metrics=SystemMetrics(disk_usage_percent=10)).is_due
    assert not evaluate(below, START, metrics=SystemMetrics(disk_usage_percent=20)).is_due


def test_condition_cooldown_allows_one_run_per_window() -> None:
    task = make_task(ConditionSchedule(threshold=80, cooldown_minutes=30))
    hot = SystemMetrics(ram_usage_percent=95)

    due_at = []
    now = START
    for _ in range(90):  # one evaluation per minute, condition always true
        if evaluate(task, now, metrics=hot).is_due:
            due_at.append(now)
            record_run(task, Outcome.ok(), now)
        now += timedelta(minutes=1)

    assert due_at == [START, START + timedelta(minutes=30), START + timedelta(minutes=60)]


def test_condition_cooldown_reports_skipped() -> None:
    task = make_task(ConditionSchedule(threshold=80), last_run_at=START)
    decision = evaluate(
        task, START + timedelta(minutes=10),
        metrics=SystemMetrics(ram_usage_percent=95),
        default_cooldown=timedelta(minutes=30),
    )
    assert decision.verdict == "skipped"
    assert "cooldown" in decision.reason


# ---------------------------------------------------------------------------
# next_eligible_at
# ---------------------------------------------------------------------------

def test_next_eligible_at_per_schedule() -> None:
    assert next_eligible_at(make_task(StartupSchedule())) is None
    assert next_eligible_at(make_task(IntervalSchedule(minutes=60))) is None
    assert next_eligible_at(
        make_task(IntervalSchedule(minutes=60), last_run_at=START)
    ) == START + timedelta(hours=1)
    assert next_eligible_at(
        make_task(ConditionSchedule(threshold=80), last_run_at=START),
        default_cooldown=timedelta(minutes=15),
    ) == START + timedelta(minutes=15)
    assert next_eligible_at(
        make_task(WeeklySchedule(weekday="wednesday", time=time(8, 30)), action=ToggleDefender(enable=False)),
        tz=UTC,
    ) == datetime(2024, 1, 3, 8, 30, tzinfo=UTC)
