"""Sweeper CLI -- the `sweeper` command.

Usage:
    sweeper init                 Write a default config.yaml
    sweeper start                Start the scheduler service
    sweeper status               Show scheduler status
    sweeper tasks                List tasks
    sweeper add                  Create a task with the interactive wizard
    sweeper template <name>      Create a task from a quick template
    sweeper enable <id>          Enable a task
    sweeper disable <id>         Disable a task
    sweeper delete <id>          Delete a task
    sweeper run <id>             Run a task now
    sweeper scheduler on|off     Turn automatic execution on or off

Task commands go through the HTTP API when the service is running, and
edit the task file directly otherwise.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

import aiohttp

from core.config import AppConfig, get_home_dir, load_config
from core.data.store import TaskStore
from core.errors import CorruptPersistence, NotFound, ValidationError
from core.models.tasks import Task, describe_action, describe_schedule
from scheduler.templates import TEMPLATES


class ServiceError(Exception):
    """The running service answered with an error status."""

    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body}")


def _load(args: argparse.Namespace) -> AppConfig:
    home = Path(args.home).expanduser() if args.home else get_home_dir()
    return load_config(config_path=home / "config.yaml", env_path=home / ".env")


async def _request(config: AppConfig, method: str, path: str, body: Any = None) -> Any:
    url = f"http://{config.server.host}:{config.server.port}{path}"
    timeout = aiohttp.ClientTimeout(total=None, sock_connect=2)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.request(method, url, json=body) as resp:
            data = await resp.json()
            if resp.status >= 400:
                raise ServiceError(resp.status, data)
            return data


def _call_service(config: AppConfig, method: str, path: str, body: Any = None) -> Any | None:
    """Call the running service; None when nothing is listening."""
    if not config.server.enabled:
        return None
    try:
        return asyncio.run(_request(config, method, path, body))
    except (aiohttp.ClientConnectorError, asyncio.TimeoutError):
        return None


def _local_scheduler(config: AppConfig):
    from main import build_scheduler, build_store
    return build_scheduler(config, build_store(config))


def _read_store(config: AppConfig) -> TaskStore:
    """Load the task file for a read-only command. Raises CorruptPersistence.

    Unlike the service, this never moves an unreadable file aside.
    """
    store = TaskStore(config.tasks_path)
    store.load()
    return store


def _print_task(task: Task) -> None:
    state = "on " if task.enabled else "off"
    last = task.stats.last_result
    result = ""
    if last is not None:
        result = f"  last: {'ok' if last.success else 'FAILED'} {last.at:%Y-%m-%d %H:%M}"
    print(f"  [{state}] {task.id}  {task.name}")
    print(f"        {describe_action(task.action)}, {describe_schedule(task.schedule)}"
          f"  runs: {task.stats.successes}/{task.stats.runs_total}{result}")


def _fail(message: str) -> None:
    print(f"  {message}")
    sys.exit(1)


def _task_command(args: argparse.Namespace, method: str, path: str, local, body: Any = None) -> None:
    """Run a task operation remotely, or locally if the service is down."""
    config = _load(args)
    try:
        data = _call_service(config, method, path, body)
        if data is None:
            result = local(config)
        elif isinstance(data, dict) and "id" in data:
            result = Task.model_validate(data)
        else:
            result = data
    except ServiceError as exc:
        body = exc.body if isinstance(exc.body, dict) else {}
        if exc.status == 404:
            _fail(f"Task not found: {body.get('task_id', '?')}")
        if exc.status == 422:
            _fail(f"Invalid {body.get('field')}: {body.get('reason')}")
        _fail(str(exc))
        return
    except NotFound as exc:
        _fail(str(exc))
        return
    except ValidationError as exc:
        _fail(f"Invalid {exc.field}: {exc.reason}")
        return

    if isinstance(result, Task):
        _print_task(result)
    elif isinstance(result, dict) and "deleted" in result:
        print(f"  Deleted: {result['deleted']}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_init(args: argparse.Namespace) -> None:
    """Write a default configuration."""
    from cli.wizard import run_init
    home = Path(args.home).expanduser() if args.home else get_home_dir()
    run_init(home_dir=home)


def cmd_start(args: argparse.Namespace) -> None:
    """Start the scheduler service."""
    home = Path(args.home).expanduser() if args.home else get_home_dir()
    config_path = home / "config.yaml"

    from main import run, setup_logging
    setup_logging("INFO")

    try:
        asyncio.run(run(config_path=str(config_path), env_path=str(home / ".env")))
    except KeyboardInterrupt:
        pass


def cmd_status(args: argparse.Namespace) -> None:
    """Show scheduler status."""
    from cli.banner import print_banner
    print_banner()

    config = _load(args)
    print(f"  Home:   {config.home_path}")
    print(f"  Tasks:  {config.tasks_path} ({'exists' if config.tasks_path.exists() else 'NOT FOUND'})")

    state = _call_service(config, "GET", "/state/scheduler")
    if state is None:
        print("  Service: not running")
        try:
            settings = _read_store(config).settings
        except CorruptPersistence as exc:
            print(f"  Scheduler: unknown ({exc})")
            print()
            return
        print(f"  Scheduler: {'enabled' if settings.enabled else 'disabled'}"
              f" (auto-start {'on' if settings.auto_start_scheduler else 'off'})")
    else:
        status, settings = state["status"], state["settings"]
        print(f"  Service: {status['state']} at http://{config.server.host}:{config.server.port}")
        print(f"  Scheduler: {'enabled' if settings['enabled'] else 'disabled'}"
              f" (auto-start {'on' if settings['auto_start_scheduler'] else 'off'})")
        print(f"  Ticks: {status['ticks']}, last: {status['last_tick_at'] or 'never'}")
    print()


def cmd_tasks(args: argparse.Namespace) -> None:
    """List tasks."""
    config = _load(args)
    data = _call_service(config, "GET", "/state/tasks")
    if data is None:
        try:
            tasks = _read_store(config).snapshot()
        except CorruptPersistence as exc:
            _fail(str(exc))
            return
    else:
        tasks = [Task.model_validate(item) for item in data]

    if not tasks:
        print("  No tasks. Create one with 'sweeper add' or 'sweeper template <name>'.")
        return
    for task in tasks:
        _print_task(task)


def cmd_add(args: argparse.Namespace) -> None:
    """Create a task interactively."""
    from cli.wizard import prompt_task
    draft = prompt_task()
    _task_command(args, "POST", "/tasks", lambda c: _local_scheduler(c).create_task(draft), body=draft)


def cmd_template(args: argparse.Namespace) -> None:
    """Create a task from a template."""
    name = args.name
    if name not in TEMPLATES:
        _fail(f"Unknown template '{name}'. Available: {', '.join(sorted(TEMPLATES))}")
    _task_command(
        args, "POST", f"/tasks/templates/{name}",
        lambda c: _local_scheduler(c).create_from_template(name),
    )


def cmd_enable(args: argparse.Namespace) -> None:
    _task_command(
        args, "POST", f"/tasks/{args.task_id}/enable",
        lambda c: _local_scheduler(c).set_task_enabled(args.task_id, True),
    )


def cmd_disable(args: argparse.Namespace) -> None:
    _task_command(
        args, "POST", f"/tasks/{args.task_id}/disable",
        lambda c: _local_scheduler(c).set_task_enabled(args.task_id, False),
    )


def cmd_delete(args: argparse.Namespace) -> None:
    def local(config: AppConfig) -> dict:
        _local_scheduler(config).delete_task(args.task_id)
        return {"deleted": args.task_id}

    _task_command(args, "DELETE", f"/tasks/{args.task_id}", local)


def cmd_run(args: argparse.Namespace) -> None:
    """Run a task now and print the outcome."""
    from main import setup_logging
    setup_logging("WARNING")
    _task_command(
        args, "POST", f"/tasks/{args.task_id}/run",
        lambda c: asyncio.run(_local_scheduler(c).run_now(args.task_id)),
    )


def cmd_scheduler(args: argparse.Namespace) -> None:
    """Turn automatic execution on or off."""
    enabled = args.state == "on"
    config = _load(args)
    data = _call_service(config, "POST", f"/scheduler/{'enable' if enabled else 'disable'}")
    if data is None:
        _local_scheduler(config).set_enabled(enabled)
    print(f"  Scheduler {'enabled' if enabled else 'disabled'}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="sweeper",
        description="Sweeper -- scheduled RAM, disk and Defender maintenance",
    )
    parser.add_argument("--home", type=str, default=None, help="Sweeper home directory")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("init", help="Write a default config.yaml")
    sub.add_parser("start", help="Start the scheduler service")
    sub.add_parser("status", help="Show scheduler status")
    sub.add_parser("tasks", help="List tasks")
    sub.add_parser("add", help="Create a task with the interactive wizard")

    template_parser = sub.add_parser("template", help="Create a task from a template")
    template_parser.add_argument("name", choices=sorted(TEMPLATES))

    for name, help_text in (
        ("enable", "Enable a task"),
        ("disable", "Disable a task"),
        ("delete", "Delete a task"),
        ("run", "Run a task now"),
    ):
        task_parser = sub.add_parser(name, help=help_text)
        task_parser.add_argument("task_id", type=str)

    scheduler_parser = sub.add_parser("scheduler", help="Turn automatic execution on or off")
    scheduler_parser.add_argument("state", choices=["on", "off"])

    return parser


def main() -> None:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    commands = {
        "init": cmd_init,
        "start": cmd_start,
        "status": cmd_status,
        "tasks": cmd_tasks,
        "add": cmd_add,
        "template": cmd_template,
        "enable": cmd_enable,
        "disable": cmd_disable,
        "delete": cmd_delete,
        "run": cmd_run,
        "scheduler": cmd_scheduler,
    }

    handler = commands.get(args.command)
    if handler:
        handler(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
