"""Foreground service: scheduler plus webhook server in one event loop."""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

import structlog
import uvicorn

from playwatch.server.app import ServiceState, create_app
from playwatch.storage import Database
from playwatch.tracker.engine import TrackerEngine
from playwatch.tracker.scheduler import CheckScheduler

if TYPE_CHECKING:
    from playwatch.config import AppConfig

log = structlog.get_logger(__name__)


async def run_service(config: AppConfig) -> None:
    """Run until SIGINT/SIGTERM: periodic checks plus the HTTP endpoints."""
    state = ServiceState(webhook_secret=config.service.webhook_secret.get_secret_value())

    db = Database(config.db_path)
    await db.connect()

    engine = TrackerEngine(config, db)
    scheduler = CheckScheduler(engine, interval_minutes=config.tracker.interval_minutes)
    state.engine = engine
    state.scheduler = scheduler

    if config.is_spotify_configured():
        await scheduler.start()
    else:
        log.warning("spotify_not_configured", hint="playwatch config set spotify.client_id <id>")

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, state.request_shutdown)

    server_config = uvicorn.Config(
        create_app(state),
        host=config.service.host,
        port=config.service.port,
        log_level="warning",
        loop="asyncio",
    )
    server = uvicorn.Server(server_config)
    server_task = asyncio.create_task(server.serve())
    log.info("service_started", host=config.service.host, port=config.service.port)

    await state.shutdown_event.wait()

    log.info("initiating graceful shutdown")
    await scheduler.stop()

    server.should_exit = True
    await server_task

    await db.close()
    log.info("service shut down cleanly")
