"""Scheduler runner -- asyncio loop that evaluates tasks and fires due ones.

Every `tick_interval` seconds:
1. Skips everything if the scheduler is globally disabled
2. Snapshots the task set from the store
3. Samples system metrics if an enabled condition task needs them
4. Evaluates each task and runs the due ones, one at a time
5. Records each outcome through the store (stats, history, hint)

Manual "run now" requests go through the same dispatcher and recorder and
share the lock that keeps a single action in flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, tzinfo
from functools import partial
from typing import Any

from core.clock import Clock, SystemClock
from core.data.store import TaskStore
from core.duration import format_duration
from core.errors import NotFound
from core.models.settings import SchedulerSettings, SchedulerStatus
from core.models.system import SystemMetrics
from core.models.tasks import (
    CleanDisk,
    ConditionSchedule,
    DiskCleaningOptions,
    StartupSchedule,
    Task,
    TaskDraft,
    TaskPatch,
    describe_action,
)
from core.protocols import MetricsProvider
from scheduler.dispatcher import ActionDispatcher
from scheduler.evaluator import DEFAULT_COOLDOWN, evaluate, next_eligible_at
from scheduler.recorder import DEFAULT_HISTORY_CAP, record_run
from scheduler.templates import template_draft

logger = logging.getLogger(__name__)


def eligibility_for(tz: tzinfo | None, default_cooldown: timedelta = DEFAULT_COOLDOWN):
    """The next_eligible_at function a TaskStore should cache hints with."""
    return partial(next_eligible_at, tz=tz, default_cooldown=default_cooldown)


def _disk_options(task: Task) -> DiskCleaningOptions | None:
    """Disk options a cleanable_disk_mb condition is measured against."""
    schedule = task.schedule
    if not isinstance(schedule, ConditionSchedule) or schedule.metric != "cleanable_disk_mb":
        return None
    if isinstance(task.action, CleanDisk):
        return task.action.options
    return DiskCleaningOptions()


def _metrics_key(options: DiskCleaningOptions | None) -> str | None:
    return None if options is None else options.model_dump_json()


class Scheduler:
    """Owns the tick loop and is the single entry point for task operations.

    Usage:
        scheduler = Scheduler(store=store, dispatcher=dispatcher, metrics=metrics)
        await scheduler.start()
        ...
        await scheduler.stop()  # waits for the running action, flushes the store
    """

    def __init__(
        self,
        store: TaskStore,
        dispatcher: ActionDispatcher,
        metrics: MetricsProvider | None = None,
        *,
        tick_interval: float = 30.0,
        tz: tzinfo | None = None,
        clock: Clock | None = None,
        default_cooldown: timedelta = DEFAULT_COOLDOWN,
        history_cap: int = DEFAULT_HISTORY_CAP,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._metrics = metrics
        self._tick_interval = tick_interval
        self._tz = tz
        self._clock = clock or SystemClock(tz)
        self._default_cooldown = default_cooldown
        self._history_cap = history_cap
        self._eligibility = eligibility_for(tz, default_cooldown)

        self._run_lock = asyncio.Lock()
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

        # Startup tasks that already fired in this process
        self._started: set[str] = set()

        self._ticks = 0
        self._last_tick_at: datetime | None = None
        self._current_task_id: str | None = None
        self._last_task_id: str | None = None
        self._started_at: datetime | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the scheduler loop."""
        if self.running:
            return
        self._stopping.clear()
        self._started_at = self._clock.now()
        self._task = asyncio.create_task(self._loop())
        logger.info("Scheduler started (check every %s)", format_duration(timedelta(seconds=self._tick_interval)))

    async def stop(self) -> None:
        """Stop the loop, let an in-flight action finish, then flush the store."""
        self._stopping.set()
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        # A manual run may still hold the lock
        async with self._run_lock:
            await self._dispatcher.drain()
            if not self._store.flush():
                logger.error("Task store could not be flushed on shutdown: %s", self._store.path)
        logger.info("Scheduler stopped")

    async def _loop(self) -> None:
        """Main scheduler loop."""
        delay = self._store.settings.startup_delay_seconds
        if delay:
            logger.info("Waiting %ds before the first check", delay)
            if await self._wait(delay):
                return

        while not self._stopping.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Error in scheduler loop")
            if await self._wait(self._tick_interval):
                return

    async def _wait(self, seconds: float) -> bool:
        """Sleep until the next tick. Returns True if stop() was requested."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def tick(self) -> list[Task]:
        """Evaluate every task once and run the due ones. Returns tasks that ran."""
        now = self._clock.now()
        self._ticks += 1
        self._last_tick_at = now

        if not self._store.settings.enabled:
            logger.debug("Scheduler disabled, tick %d skipped", self._ticks)
            return []

        tasks = self._store.snapshot()
        samples = await self._sample_metrics(tasks)

        ran: list[Task] = []
        for task in tasks:
            if self._stopping.is_set():
                break
            try:
                decision = evaluate(
                    task,
                    self._clock.now(),
                    tz=self._tz,
                    metrics=samples.get(_metrics_key(_disk_options(task))),
                    started_this_process=task.id in self._started,
                    default_cooldown=self._default_cooldown,
                )
                if not decision.is_due:
                    logger.debug("Task %s %s: %s", task.id, decision.verdict, decision.reason)
                    continue

                if isinstance(task.schedule, StartupSchedule):
                    self._started.add(task.id)
                updated = await self._execute(task.id)
                if updated is not None:
                    ran.append(updated)
            except Exception:
                logger.exception("Error handling task %s", task.id)

        return ran

    async def _sample_metrics(self, tasks: list[Task]) -> dict[str | None, SystemMetrics | None]:
        """Sample metrics only if an enabled condition task will look at them.

        cleanable_disk_mb depends on which categories a task would clean, so
        there is one sample per distinct set of disk options, keyed by
        _metrics_key().
        """
        if self._metrics is None:
            return {}

        wanted: dict[str | None, DiskCleaningOptions | None] = {}
        for t in tasks:
            if t.enabled and isinstance(t.schedule, ConditionSchedule):
                options = _disk_options(t)
                wanted.setdefault(_metrics_key(options), options)

        samples: dict[str | None, SystemMetrics | None] = {}
        for key, options in wanted.items():
            try:
                samples[key] = await asyncio.to_thread(self._metrics.sample, options)
            except Exception:
                logger.exception("Failed to sample system metrics")
                samples[key] = None
        return samples

    async def _execute(self, task_id: str, *, manual: bool = False) -> Task | None:
        """Run one task's action and record the outcome. One at a time."""
        async with self._run_lock:
            try:
                task = self._store.get(task_id)
            except NotFound:
                if manual:
                    raise
                logger.info("Task %s was deleted before it could run", task_id)
                return None
            if not task.enabled and not manual:
                logger.info("Task %s was disabled before it could run", task_id)
                return None

            logger.info("Firing task: %s (%s)", task.name, describe_action(task.action))
            self._current_task_id = task.id
            started = time.monotonic()
            try:
                outcome = await self._dispatcher.execute(task.action)
            finally:
                self._current_task_id = None
            duration_ms = int((time.monotonic() - started) * 1000)
            finished_at = self._clock.now()

            logger.info(
                "Task %s %s: %s",
                task.name, "succeeded" if outcome.success else "failed", outcome.message,
            )
            self._last_task_id = task.id

            def apply_outcome(current: Task) -> Task:
                record_run(current, outcome, finished_at, duration_ms=duration_ms, cap=self._history_cap)
                current.next_eligible_at = self._eligibility(current)
                return current

            try:
                return self._store.apply(task.id, apply_outcome)
            except NotFound:
                # Deleted while the action ran; the outcome has nowhere to go
                logger.info("Task %s was deleted while running; outcome dropped", task.id)
                if manual:
                    raise
                return None

    # ------------------------------------------------------------------
    # Status and global switch
    # ------------------------------------------------------------------

    def status(self) -> SchedulerStatus:
        if not self.running:
            state = "stopped"
        elif self._current_task_id is not None:
            state = "running"
        else:
            state = "idle"
        return SchedulerStatus(
            enabled=self._store.settings.enabled,
            state=state,
            current_task_id=self._current_task_id,
            last_task_id=self._last_task_id,
            last_tick_at=self._last_tick_at,
            ticks=self._ticks,
            tick_interval_seconds=self._tick_interval,
            started_at=self._started_at,
        )

    @property
    def settings(self) -> SchedulerSettings:
        return self._store.settings

    def set_enabled(self, enabled: bool) -> SchedulerSettings:
        logger.info("Scheduler %s", "enabled" if enabled else "disabled")
        return self._store.update_settings(enabled=enabled)

    def update_settings(self, **changes: Any) -> SchedulerSettings:
        return self._store.update_settings(**changes)

    # ------------------------------------------------------------------
    # Task operations
    # ------------------------------------------------------------------

    async def run_now(self, task_id: str) -> Task:
        """Execute a task immediately, ignoring its schedule and enabled flag."""
        updated = await self._execute(task_id, manual=True)
        if updated is None:
            raise NotFound(task_id)
        return updated

    def list_tasks(self) -> list[Task]:
        return self._store.snapshot()

    def get_task(self, task_id: str) -> Task:
        return self._store.get(task_id)

    def create_task(self, draft: TaskDraft | dict) -> Task:
        return self._store.create(draft)

    def create_from_template(self, name: str) -> Task:
        return self._store.create(template_draft(name))

    def update_task(self, task_id: str, patch: TaskPatch | dict) -> Task:
        return self._store.update(task_id, patch)

    def set_task_enabled(self, task_id: str, enabled: bool) -> Task:
        return self._store.set_enabled(task_id, enabled)

    def delete_task(self, task_id: str) -> None:
        self._store.delete(task_id)
        self._started.discard(task_id)
