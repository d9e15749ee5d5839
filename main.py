"""Sweeper entrypoint -- wires all components together and starts the service.

Usage:
    python main.py
    python main.py --config /path/to/config.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from aiohttp import web

from core.config import AppConfig, load_config
from core.clock import SystemClock
from core.data.store import TaskStore, open_store
from plugins.actions.windows import WindowsMaintenance
from plugins.metrics.psutil_probe import PsutilMetrics
from scheduler.dispatcher import ActionDispatcher
from scheduler.runner import Scheduler, eligibility_for
from server import create_app

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str, log_file: Path | None = None) -> None:
    """Configure logging for the application."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )
    # Quiet down noisy libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sweeper maintenance task scheduler")
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to config.yaml (default: ~/.sweeper/config.yaml)",
    )
    parser.add_argument(
        "--env",
        type=str,
        default=None,
        help="Path to .env file (default: ~/.sweeper/.env)",
    )
    return parser.parse_args()


def build_store(config: AppConfig) -> TaskStore:
    """Open the task document, recovering from an unreadable one."""
    tz = config.scheduler.tz
    return open_store(
        config.tasks_path,
        clock=SystemClock(tz),
        eligibility=eligibility_for(tz, config.scheduler.cooldown),
    )


def build_scheduler(config: AppConfig, store: TaskStore) -> Scheduler:
    """Wire the scheduler to the real Windows actions and psutil metrics."""
    actions = WindowsMaintenance(
        powershell=config.actions.powershell,
        defender=config.actions.defender,
    )
    dispatcher = ActionDispatcher(actions, timeout=config.actions.timeout_seconds)
    tz = config.scheduler.tz
    return Scheduler(
        store=store,
        dispatcher=dispatcher,
        metrics=PsutilMetrics(),
        tick_interval=config.scheduler.tick_seconds,
        tz=tz,
        clock=SystemClock(tz),
        default_cooldown=config.scheduler.cooldown,
        history_cap=config.scheduler.history_cap,
    )


async def run(config_path: str | None = None, env_path: str | None = None) -> None:
    """Initialize all components and run until interrupted."""
    # Load configuration
    config = load_config(config_path=config_path, env_path=env_path)
    setup_logging(config.logging.level, config.log_path)
    logger = logging.getLogger("sweeper")
    logger.info("Configuration loaded from %s", config.home_path)

    store = build_store(config)
    scheduler = build_scheduler(config, store)

    # Without auto-start the user turns the scheduler on explicitly
    if not store.settings.auto_start_scheduler and store.settings.enabled:
        logger.info("Auto-start is off; scheduler stays disabled until enabled")
        scheduler.set_enabled(False)

    await scheduler.start()

    runner: web.AppRunner | None = None
    if config.server.enabled:
        app = create_app(config=config, scheduler=scheduler)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, config.server.host, config.server.port)
        await site.start()
        logger.info(
            "Sweeper running at http://%s:%d",
            config.server.host,
            config.server.port,
        )
    logger.info("Task store: %s (%d task(s))", store.path, len(store))

    # Run until interrupted
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        logger.info("Shutting down...")
        if runner is not None:
            await runner.cleanup()
        await scheduler.stop()
        logger.info("Shutdown complete")


def main() -> None:
    args = parse_args()
    setup_logging("INFO")
    try:
        asyncio.run(run(config_path=args.config, env_path=args.env))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
