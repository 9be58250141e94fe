"""Check pass: fetch, diff and persist every tracked playlist in turn."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from playwatch.tracker.events import ChangeEvent, TracksAdded, TracksRemoved
from playwatch.tracker.metadata import IMAGE_DEBOUNCE, detect_metadata_changes
from playwatch.tracker.reconciler import reconcile_tracks
from playwatch.tracker.spotify import FetchError

if TYPE_CHECKING:
    from playwatch.storage.database import Database
    from playwatch.storage.models import TrackedPlaylist
    from playwatch.tracker.spotify import SpotifyClient

log = structlog.get_logger(__name__)


@dataclass
class PassResult:
    """Everything one pass produced, events in notification order."""

    events: list[ChangeEvent] = field(default_factory=list)
    entities_processed: int = 0
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)  # suspicious empty fetches
    names: dict[str, str] = field(default_factory=dict)  # playlist id → fetched name

    @property
    def any_change_detected(self) -> bool:
        return bool(self.events)


def _utcnow() -> datetime:
    return datetime.now(UTC)


async def _process_playlist(
    db: Database,
    fetcher: SpotifyClient,
    playlist_id: str,
    *,
    now: datetime,
    image_debounce: timedelta,
    trust_empty_fetch: bool,
) -> tuple[str, list[ChangeEvent]] | None:
    """Run one playlist through detection and reconciliation.

    Returns the fetched name and the playlist's events, or *None* when the
    playlist was skipped without touching its stored state.
    """
    fetched = await fetcher.fetch_playlist(playlist_id)
    name = fetched.metadata.name

    stored_metadata = await db.load_metadata(playlist_id)
    stored_snapshot = await db.load_track_snapshot(playlist_id)

    if not fetched.tracks and not stored_snapshot.is_empty() and not trust_empty_fetch:
        log.warning(
            "empty_fetch_suppressed",
            playlist_id=playlist_id,
            stored_tracks=len(stored_snapshot.track_ids),
        )
        return None

    meta_diff = detect_metadata_changes(stored_metadata, fetched.metadata, now=now, debounce=image_debounce)
    track_diff = reconcile_tracks(stored_snapshot, fetched.tracks)

    events: list[ChangeEvent] = list(meta_diff.events)
    if track_diff.removed:
        events.append(TracksRemoved(playlist_id=playlist_id, playlist_name=name, tracks=track_diff.removed))
    if track_diff.added:
        events.append(TracksAdded(playlist_id=playlist_id, playlist_name=name, tracks=track_diff.added))

    await db.save_entity(playlist_id, track_diff.snapshot, meta_diff.record)

    log.info(
        "playlist_checked",
        playlist_id=playlist_id,
        tracks=len(track_diff.snapshot.track_ids),
        added=len(track_diff.added),
        removed=len(track_diff.removed),
        metadata_changed=meta_diff.changed,
    )
    return name, events


async def run_pass(
    db: Database,
    fetcher: SpotifyClient,
    playlists: Iterable[TrackedPlaylist],
    *,
    now: Callable[[], datetime] = _utcnow,
    image_debounce: timedelta = IMAGE_DEBOUNCE,
    trust_empty_fetch: bool = True,
) -> PassResult:
    """Check *playlists* one at a time, in registry order.

    A playlist whose fetch fails (or that blows up while being processed) is
    skipped with its stored state untouched; the pass carries on with the
    next one.  Each playlist's state is written only after its diff is
    complete, so a pass can be abandoned between playlists safely.

    Callers must not run two passes over the same store concurrently.
    """
    result = PassResult()

    for playlist in playlists:
        try:
            outcome = await _process_playlist(
                db,
                fetcher,
                playlist.id,
                now=now(),
                image_debounce=image_debounce,
                trust_empty_fetch=trust_empty_fetch,
            )
        except FetchError as exc:
            log.warning("playlist_fetch_failed", playlist_id=playlist.id, error=str(exc))
            result.failed.append(playlist.id)
            continue
        except Exception as exc:
            log.exception("playlist_check_error", playlist_id=playlist.id, error=str(exc))
            result.failed.append(playlist.id)
            continue

        if outcome is None:
            result.skipped.append(playlist.id)
            continue

        name, events = outcome
        result.entities_processed += 1
        result.names[playlist.id] = name
        result.events.extend(events)

    log.info(
        "pass_completed",
        processed=result.entities_processed,
        failed=len(result.failed),
        skipped=len(result.skipped),
        events=len(result.events),
    )
    return result
