# tests/test_recorder.py

from __future__ import annotations

from datetime import timedelta

from core.models.tasks import CleanRam, IntervalSchedule, Outcome, Task
from scheduler.recorder import record_run

from .conftest import START


def _task() -> Task:
    return Task(name="t", action=CleanRam(), schedule=IntervalSchedule(minutes=5), created_at=START)


def test_counts_successes_and_failures() -> None:
    task = _task()
    record_run(task, Outcome.ok("fine"), START)
    record_run(task, Outcome.failed("boom"), START + timedelta(minutes=5))
    record_run(task, Outcome.failed("boom again"), START + timedelta(minutes=10))

    stats = task.stats
    assert stats.runs_total == 3
    assert stats.successes == 1
    assert stats.failures == 2
    assert stats.consecutive_failures == 2
    assert stats.last_result.success is False
    assert stats.last_result.message == "boom again"

    record_run(task, Outcome.ok(), START + timedelta(minutes=15))
    assert task.stats.consecutive_failures == 0


def test_history_is_capped_and_keeps_newest() -> None:
    task = _task()
    cap = 5
    for i in range(cap + 1):
        record_run(task, Outcome.ok(f"run {i}"), START + timedelta(minutes=i), cap=cap)

    assert len(task.history) == cap
    messages = [r.message for r in task.history]
    assert "run 0" not in messages
    assert messages[-1] == f"run {cap}"


def test_last_run_at_never_moves_backwards() -> None:
    task = _task()
    record_run(task, Outcome.ok(), START)
    record_run(task, Outcome.ok(), START - timedelta(hours=1))  # clock stepped back

    assert task.last_run_at == START
    assert task.stats.runs_total == 2


def test_duration_is_recorded() -> None:
    task = _task()
    record_run(task, Outcome.ok(), START, duration_ms=1234)
    assert task.history[-1].duration_ms == 1234
