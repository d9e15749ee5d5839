"""Lightweight aiohttp server -- the HTTP API the desktop GUI talks to.

Exposes task CRUD, "run now", the global scheduler switch and read-only
state snapshots. No framework magic, no middleware stack.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from core.errors import NotFound, ValidationError

if TYPE_CHECKING:
    from core.config import AppConfig
    from scheduler.runner import Scheduler

logger = logging.getLogger(__name__)


def create_app(config: AppConfig, scheduler: Scheduler) -> web.Application:
    """Create and configure the aiohttp application."""
    app = web.Application()

    # Store references for route handlers
    app["config"] = config
    app["scheduler"] = scheduler

    # Register routes
    app.router.add_get("/health", handle_health)
    app.router.add_get("/state/tasks", handle_get_tasks)
    app.router.add_get("/state/tasks/{task_id}", handle_get_task)
    app.router.add_get("/state/scheduler", handle_get_scheduler)
    app.router.add_post("/tasks", handle_create_task)
    app.router.add_post("/tasks/templates/{name}", handle_create_from_template)
    app.router.add_patch("/tasks/{task_id}", handle_update_task)
    app.router.add_delete("/tasks/{task_id}", handle_delete_task)
    app.router.add_post("/tasks/{task_id}/enable", handle_enable_task)
    app.router.add_post("/tasks/{task_id}/disable", handle_disable_task)
    app.router.add_post("/tasks/{task_id}/run", handle_run_task)
    app.router.add_post("/scheduler/enable", handle_enable_scheduler)
    app.router.add_post("/scheduler/disable", handle_disable_scheduler)
    app.router.add_patch("/scheduler/settings", handle_update_settings)

    return app


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _BadRequest(Exception):
    pass


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except json.JSONDecodeError as exc:
        raise _BadRequest("Invalid JSON") from exc


def _error(exc: Exception) -> web.Response:
    """Map a caller-facing error onto an HTTP response."""
    if isinstance(exc, _BadRequest):
        return web.json_response({"error": str(exc)}, status=400)
    if isinstance(exc, ValidationError):
        return web.json_response(exc.to_dict(), status=422)
    if isinstance(exc, NotFound):
        return web.json_response({"error": "not_found", "task_id": exc.task_id}, status=404)
    raise exc


def _scheduler_state(scheduler: Scheduler) -> dict:
    return {
        "status": scheduler.status().model_dump(mode="json"),
        "settings": scheduler.settings.model_dump(mode="json"),
    }


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------

async def handle_health(request: web.Request) -> web.Response:
    """GET /health -- health check."""
    scheduler: Scheduler = request.app["scheduler"]
    tasks = scheduler.list_tasks()
    status = scheduler.status()
    return web.json_response({
        "status": "ok",
        "scheduler": status.state,
        "enabled": status.enabled,
        "tasks": len(tasks),
        "enabled_tasks": sum(1 for t in tasks if t.enabled),
    })


async def handle_get_tasks(request: web.Request) -> web.Response:
    """GET /state/tasks -- list all tasks."""
    scheduler: Scheduler = request.app["scheduler"]
    tasks = scheduler.list_tasks()
    return web.json_response([t.model_dump(mode="json") for t in tasks])


async def handle_get_task(request: web.Request) -> web.Response:
    """GET /state/tasks/{task_id} -- one task with stats and history."""
    scheduler: Scheduler = request.app["scheduler"]
    try:
        task = scheduler.get_task(request.match_info["task_id"])
    except NotFound as exc:
        return _error(exc)
    return web.json_response(task.model_dump(mode="json"))


async def handle_get_scheduler(request: web.Request) -> web.Response:
    """GET /state/scheduler -- loop status and persisted settings."""
    return web.json_response(_scheduler_state(request.app["scheduler"]))


async def handle_create_task(request: web.Request) -> web.Response:
    """POST /tasks -- create a task.

    Body: {"name": "...", "action": {"kind": "clean_ram"}, "schedule": {"type": "interval", "minutes": 60}}
    """
    scheduler: Scheduler = request.app["scheduler"]
    try:
        body = await _read_json(request)
        task = scheduler.create_task(body)
    except (_BadRequest, ValidationError) as exc:
        return _error(exc)
    return web.json_response(task.model_dump(mode="json"), status=201)


async def handle_create_from_template(request: web.Request) -> web.Response:
    """POST /tasks/templates/{name} -- create a task from a quick template."""
    scheduler: Scheduler = request.app["scheduler"]
    try:
        task = scheduler.create_from_template(request.match_info["name"])
    except ValidationError as exc:
        return _error(exc)
    return web.json_response(task.model_dump(mode="json"), status=201)


async def handle_update_task(request: web.Request) -> web.Response:
    """PATCH /tasks/{task_id} -- partial update; action/schedule replace whole."""
    scheduler: Scheduler = request.app["scheduler"]
    try:
        body = await _read_json(request)
        task = scheduler.update_task(request.match_info["task_id"], body)
    except (_BadRequest, ValidationError, NotFound) as exc:
        return _error(exc)
    return web.json_response(task.model_dump(mode="json"))


async def handle_delete_task(request: web.Request) -> web.Response:
    """DELETE /tasks/{task_id} -- delete a task."""
    scheduler: Scheduler = request.app["scheduler"]
    task_id = request.match_info["task_id"]
    try:
        scheduler.delete_task(task_id)
    except NotFound as exc:
        return _error(exc)
    return web.json_response({"deleted": task_id})


async def _set_task_enabled(request: web.Request, enabled: bool) -> web.Response:
    scheduler: Scheduler = request.app["scheduler"]
    try:
        task = scheduler.set_task_enabled(request.match_info["task_id"], enabled)
    except NotFound as exc:
        return _error(exc)
    return web.json_response(task.model_dump(mode="json"))


async def handle_enable_task(request: web.Request) -> web.Response:
    """POST /tasks/{task_id}/enable"""
    return await _set_task_enabled(request, True)


async def handle_disable_task(request: web.Request) -> web.Response:
    """POST /tasks/{task_id}/disable"""
    return await _set_task_enabled(request, False)


async def handle_run_task(request: web.Request) -> web.Response:
    """POST /tasks/{task_id}/run -- execute now; waits for the action to finish."""
    scheduler: Scheduler = request.app["scheduler"]
    try:
        task = await scheduler.run_now(request.match_info["task_id"])
    except NotFound as exc:
        return _error(exc)
    return web.json_response(task.model_dump(mode="json"))


async def handle_enable_scheduler(request: web.Request) -> web.Response:
    """POST /scheduler/enable -- resume automatic execution."""
    scheduler: Scheduler = request.app["scheduler"]
    scheduler.set_enabled(True)
    return web.json_response(_scheduler_state(scheduler))


async def handle_disable_scheduler(request: web.Request) -> web.Response:
    """POST /scheduler/disable -- ticks continue but nothing is evaluated."""
    scheduler: Scheduler = request.app["scheduler"]
    scheduler.set_enabled(False)
    return web.json_response(_scheduler_state(scheduler))


async def handle_update_settings(request: web.Request) -> web.Response:
    """PATCH /scheduler/settings

    Body: {"auto_start_scheduler": false, "startup_delay_seconds": 60}
    """
    scheduler: Scheduler = request.app["scheduler"]
    try:
        body = await _read_json(request)
        if not isinstance(body, dict):
            raise ValidationError("body", f"expected an object, got {type(body).__name__}")
        scheduler.update_settings(**body)
    except (_BadRequest, ValidationError) as exc:
        return _error(exc)
    return web.json_response(_scheduler_state(scheduler))
