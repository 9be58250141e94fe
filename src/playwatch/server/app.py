"""HTTP surface of the playwatch service: health checks and the check webhook."""

from __future__ import annotations

import asyncio
import secrets
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

if TYPE_CHECKING:
    from playwatch.tracker.engine import TrackerEngine
    from playwatch.tracker.scheduler import CheckScheduler

log = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class CheckResponse(BaseModel):
    success: bool = True
    message: str = ""
    stats: dict = {}
    error: str | None = None


class SchedulerResponse(BaseModel):
    success: bool = True
    message: str = ""
    scheduler: dict = {}
    error: str | None = None


# ---------------------------------------------------------------------------
# Service runtime state
# ---------------------------------------------------------------------------


class ServiceState:
    """Holds mutable runtime state shared across the service."""

    def __init__(self, webhook_secret: str = "") -> None:
        self.started_at: datetime = datetime.now(UTC)
        self.shutdown_event: asyncio.Event = asyncio.Event()
        self.webhook_secret = webhook_secret
        self.engine: TrackerEngine | None = None
        self.scheduler: CheckScheduler | None = None

    def uptime_seconds(self) -> float:
        return round((datetime.now(UTC) - self.started_at).total_seconds(), 2)

    def get_status(self) -> dict:
        status: dict = {
            "uptime_seconds": self.uptime_seconds(),
            "started_at": self.started_at.isoformat(),
        }
        if self.engine:
            status["tracker"] = self.engine.get_status()
        if self.scheduler:
            status["scheduler"] = self.scheduler.get_status()
        return status

    def check_token(self, token: str | None) -> bool:
        """An empty configured secret rejects every request."""
        if not self.webhook_secret or not token:
            return False
        return secrets.compare_digest(token, self.webhook_secret)

    def request_shutdown(self) -> None:
        log.info("shutdown_requested")
        self.shutdown_event.set()


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(state: ServiceState) -> FastAPI:
    """Build the FastAPI application for the service."""
    app = FastAPI(title="playwatch", docs_url=None, redoc_url=None)

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "playwatch is running"

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True, "uptime_seconds": state.uptime_seconds()}

    @app.get("/status")
    async def status() -> dict:
        return state.get_status()

    @app.get("/check-playlists", response_model=CheckResponse)
    async def check_playlists(token: str | None = Query(default=None)) -> CheckResponse | JSONResponse:
        if not state.check_token(token):
            log.warning("webhook_unauthorized")
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        if state.engine is None:
            return JSONResponse(
                status_code=503,
                content=CheckResponse(success=False, error="tracker not configured").model_dump(),
            )

        if state.engine.is_busy:
            return JSONResponse(
                status_code=409,
                content=CheckResponse(success=False, error="check already in progress").model_dump(),
            )

        log.info("webhook_check_requested")
        try:
            stats = await state.engine.run_pass()
        except Exception as exc:
            log.error("webhook_check_failed", error=str(exc))
            return JSONResponse(
                status_code=500,
                content=CheckResponse(success=False, error=str(exc)).model_dump(),
            )
        return CheckResponse(message="Playlist check completed", stats=stats.to_dict())

    # -- scheduler control --

    def _scheduler_guard(token: str | None) -> JSONResponse | None:
        if not state.check_token(token):
            log.warning("webhook_unauthorized")
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})
        if state.scheduler is None or not state.scheduler.is_running:
            return JSONResponse(
                status_code=503,
                content=SchedulerResponse(success=False, error="scheduler not running").model_dump(),
            )
        return None

    @app.post("/scheduler/trigger", response_model=SchedulerResponse)
    async def scheduler_trigger(token: str | None = Query(default=None)) -> SchedulerResponse | JSONResponse:
        if (rejected := _scheduler_guard(token)) is not None:
            return rejected
        if not state.scheduler.trigger_now():
            return JSONResponse(
                status_code=409,
                content=SchedulerResponse(
                    success=False,
                    error="scheduler is paused",
                    scheduler=state.scheduler.get_status(),
                ).model_dump(),
            )
        return SchedulerResponse(message="check scheduled", scheduler=state.scheduler.get_status())

    @app.post("/scheduler/pause", response_model=SchedulerResponse)
    async def scheduler_pause(token: str | None = Query(default=None)) -> SchedulerResponse | JSONResponse:
        if (rejected := _scheduler_guard(token)) is not None:
            return rejected
        state.scheduler.pause()
        return SchedulerResponse(message="scheduler paused", scheduler=state.scheduler.get_status())

    @app.post("/scheduler/resume", response_model=SchedulerResponse)
    async def scheduler_resume(token: str | None = Query(default=None)) -> SchedulerResponse | JSONResponse:
        if (rejected := _scheduler_guard(token)) is not None:
            return rejected
        state.scheduler.resume()
        return SchedulerResponse(message="scheduler resumed", scheduler=state.scheduler.get_status())

    return app
