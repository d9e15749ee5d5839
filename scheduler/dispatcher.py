"""Action dispatcher -- maps a task's action variant to a system operation.

The action set is closed: every ActionKind variant has exactly one branch
below. Collaborator calls are blocking, so they run in a worker thread and
never stall the event loop serving the HTTP surface.
"""

from __future__ import annotations

import asyncio
import logging

from core.models.tasks import ActionKind, CleanDisk, CleanRam, Outcome, ToggleDefender, describe_action
from core.protocols import SystemActions

logger = logging.getLogger(__name__)


class ActionDispatcher:
    """Run an action and always come back with an Outcome.

    A timed-out action keeps running in its worker thread; the next call
    waits for that thread before it starts, so two actions never overlap.

    Usage:
        dispatcher = ActionDispatcher(WindowsMaintenance(...), timeout=300)
        outcome = await dispatcher.execute(task.action)
    """

    def __init__(self, actions: SystemActions, timeout: float | None = None) -> None:
        self._actions = actions
        self._timeout = timeout
        self._pending: asyncio.Future | None = None

    @property
    def busy(self) -> bool:
        """True while a worker thread (possibly a timed-out one) is still running."""
        return self._pending is not None and not self._pending.done()

    async def drain(self) -> None:
        """Wait for a timed-out action that is still running in its thread."""
        if self.busy:
            logger.warning("Waiting for a timed-out action to finish")
            await asyncio.wait([self._pending])

    async def execute(self, action: ActionKind) -> Outcome:
        """Execute one action. Exceptions are converted, never raised."""
        label = describe_action(action) if isinstance(action, (CleanRam, CleanDisk, ToggleDefender)) else repr(action)
        await self.drain()
        try:
            outcome = await self._call(action)
        except asyncio.TimeoutError:
            logger.error("Action timed out after %ss: %s", self._timeout, label)
            return Outcome.failed(f"timed out after {self._timeout:g}s")
        except Exception as exc:
            logger.exception("Action failed: %s", label)
            return Outcome.failed(str(exc) or type(exc).__name__)

        if not isinstance(outcome, Outcome):
            logger.warning("Action %s returned %r instead of an Outcome", label, outcome)
            return Outcome.failed(f"invalid result from {label}")
        return outcome

    async def _call(self, action: ActionKind) -> Outcome:
        match action:
            case CleanRam():
                call = asyncio.to_thread(self._actions.clean_ram)
            case CleanDisk(options=options):
                call = asyncio.to_thread(self._actions.clean_disk, options)
            case ToggleDefender(enable=enable, permanent=permanent):
                call = asyncio.to_thread(self._actions.toggle_defender, enable, permanent)
            case _:
                return Outcome.failed(f"unsupported action {type(action).__name__}")

        future = asyncio.ensure_future(call)
        future.add_done_callback(_log_late_failure)
        self._pending = future
        if self._timeout is None:
            return await future
        # shield: on timeout only the wait is cancelled, the thread runs on
        return await asyncio.wait_for(asyncio.shield(future), timeout=self._timeout)


def _log_late_failure(future: asyncio.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.debug("Action thread ended with %s: %s", type(exc).__name__, exc)
