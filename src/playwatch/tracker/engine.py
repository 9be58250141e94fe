"""Tracker engine: runs check passes and hands their events to the notifier."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from enum import StrEnum
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from playwatch.tracker import assembler
from playwatch.tracker.events import MetadataChanged, TracksAdded, TracksRemoved

if TYPE_CHECKING:
    from playwatch.config import AppConfig
    from playwatch.notify.telegram import TelegramNotifier
    from playwatch.storage.database import Database
    from playwatch.tracker.spotify import SpotifyClient

log = structlog.get_logger(__name__)


class TrackerState(StrEnum):
    IDLE = "idle"
    CHECKING = "checking"
    ERROR = "error"


@dataclass
class PassStats:
    entities_processed: int = 0
    failed: int = 0
    skipped: int = 0
    tracks_added: int = 0
    tracks_removed: int = 0
    metadata_changes: int = 0
    notifications_sent: int = 0

    @property
    def any_change_detected(self) -> bool:
        return bool(self.tracks_added or self.tracks_removed or self.metadata_changes)

    def to_dict(self) -> dict:
        return {**asdict(self), "any_change_detected": self.any_change_detected}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_result(cls, result: assembler.PassResult) -> PassStats:
        stats = cls(
            entities_processed=result.entities_processed,
            failed=len(result.failed),
            skipped=len(result.skipped),
        )
        for event in result.events:
            if isinstance(event, TracksAdded):
                stats.tracks_added += len(event.tracks)
            elif isinstance(event, TracksRemoved):
                stats.tracks_removed += len(event.tracks)
            elif isinstance(event, MetadataChanged):
                stats.metadata_changes += 1
        return stats


def resolve_timezone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("unknown_timezone", timezone=name, fallback="UTC")
        return UTC


class TrackerEngine:
    """Runs check passes over every tracked playlist, one pass at a time."""

    def __init__(
        self,
        config: AppConfig,
        db: Database,
        *,
        fetcher_factory: Callable[..., SpotifyClient] | None = None,
        notifier_factory: Callable[..., TelegramNotifier] | None = None,
    ) -> None:
        self._config = config
        self._db = db
        self._fetcher_factory = fetcher_factory
        self._notifier_factory = notifier_factory
        self._state = TrackerState.IDLE
        self._lock = asyncio.Lock()
        self._last_stats: PassStats | None = None
        self._last_pass_at: datetime | None = None

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def last_stats(self) -> PassStats | None:
        return self._last_stats

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    def get_status(self) -> dict:
        return {
            "state": self._state.value,
            "last_pass_at": self._last_pass_at.isoformat() if self._last_pass_at else None,
            "last_stats": self._last_stats.to_dict() if self._last_stats else None,
        }

    async def run_pass(self) -> PassStats:
        """Run one check pass. Raises if a pass is already in progress."""
        if self._lock.locked():
            raise RuntimeError("Check already in progress")

        async with self._lock:
            self._state = TrackerState.CHECKING
            try:
                stats = await self._do_pass()
            except Exception:
                self._state = TrackerState.ERROR
                raise
            self._state = TrackerState.IDLE
            self._last_stats = stats
            self._last_pass_at = datetime.now(UTC)
            return stats

    async def _do_pass(self) -> PassStats:
        playlists = await self._db.list_tracked_playlists()
        if not playlists:
            log.info("no_playlists_tracked")
            return PassStats()

        log.info("pass_start", playlists=len(playlists))

        async with self._create_fetcher() as fetcher:
            result = await assembler.run_pass(
                self._db,
                fetcher,
                playlists,
                image_debounce=timedelta(hours=self._config.tracker.image_debounce_hours),
                trust_empty_fetch=self._config.tracker.trust_empty_fetch,
            )

        # Keep registry display names in line with the provider.
        for playlist in playlists:
            name = result.names.get(playlist.id)
            if name and name != playlist.name:
                await self._db.rename_tracked_playlist(playlist.id, name)
                log.info("playlist_renamed", playlist_id=playlist.id, name=name)

        stats = PassStats.from_result(result)
        if result.events:
            stats.notifications_sent = await self._notify(result)

        log.info("pass_stats", stats=stats.to_json())
        return stats

    async def _notify(self, result: assembler.PassResult) -> int:
        notifier = self._create_notifier()
        if notifier is None:
            log.info("notifications_disabled", events=len(result.events))
            return 0
        async with notifier:
            return await notifier.notify(result.events)

    def _create_fetcher(self) -> SpotifyClient:
        if self._fetcher_factory:
            return self._fetcher_factory(self._config.spotify)
        from playwatch.tracker.spotify import SpotifyClient

        return SpotifyClient(self._config.spotify)

    def _create_notifier(self) -> TelegramNotifier | None:
        tz = resolve_timezone(self._config.telegram.timezone)
        if self._notifier_factory:
            return self._notifier_factory(self._config.telegram, tz)
        if not self._config.is_telegram_configured():
            return None
        from playwatch.notify.telegram import TelegramNotifier

        return TelegramNotifier(self._config.telegram, tz)
