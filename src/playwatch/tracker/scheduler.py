"""Check scheduler: runs the tracker engine on a configurable interval."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from playwatch.tracker.engine import TrackerEngine

log = structlog.get_logger(__name__)


class CheckScheduler:
    """Runs a check pass every ``interval_minutes``, the first one right away.

    Ticks that fall due while paused, or while a webhook-triggered pass holds
    the engine, are skipped rather than queued.
    """

    def __init__(self, engine: TrackerEngine, interval_minutes: int = 60) -> None:
        self._engine = engine
        self._interval = timedelta(minutes=interval_minutes)
        self._paused = False
        self._stopping = False
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._last_pass_at: datetime | None = None
        self._next_pass_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def interval_minutes(self) -> int:
        return int(self._interval.total_seconds() // 60)

    async def start(self) -> None:
        if self.is_running:
            return
        self._stopping = False
        self._next_pass_at = datetime.now(UTC)
        self._task = asyncio.create_task(self._loop(), name="playwatch-scheduler")
        log.info("scheduler_started", interval_minutes=self.interval_minutes)

    async def stop(self) -> None:
        """Stop the loop; an in-flight pass is allowed to finish."""
        if not self.is_running:
            return
        self._stopping = True
        self._wake.set()
        assert self._task is not None  # noqa: S101
        await self._task
        self._task = None
        log.info("scheduler_stopped")

    def trigger_now(self) -> bool:
        """Bring the next pass forward to now.  Returns False while paused."""
        if self._paused:
            return False
        self._next_pass_at = datetime.now(UTC)
        self._wake.set()
        log.info("scheduler_triggered")
        return True

    def pause(self) -> None:
        self._paused = True
        log.info("scheduler_paused")

    def resume(self) -> None:
        self._paused = False
        log.info("scheduler_resumed")

    def get_status(self) -> dict:
        return {
            "running": self.is_running,
            "paused": self._paused,
            "interval_minutes": self.interval_minutes,
            "last_pass_at": self._last_pass_at.isoformat() if self._last_pass_at else None,
            "next_pass_at": self._next_pass_at.isoformat() if self._next_pass_at else None,
        }

    # -- loop --

    def _due(self) -> bool:
        return self._next_pass_at is None or datetime.now(UTC) >= self._next_pass_at

    async def _sleep_until_due(self) -> None:
        self._wake.clear()
        if self._due():
            return
        delay = (self._next_pass_at - datetime.now(UTC)).total_seconds()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._wake.wait(), timeout=delay)

    async def _loop(self) -> None:
        while not self._stopping:
            await self._sleep_until_due()
            if self._stopping:
                break
            if not self._due():
                continue

            self._next_pass_at = datetime.now(UTC).replace(microsecond=0) + self._interval

            if self._paused:
                log.debug("scheduled_pass_skipped", reason="paused")
                continue
            if self._engine.is_busy:
                log.info("scheduled_pass_skipped", reason="check already in progress")
                continue

            try:
                await self._engine.run_pass()
            except Exception as exc:
                log.error("scheduled_pass_failed", error=str(exc))
            else:
                self._last_pass_at = datetime.now(UTC)
