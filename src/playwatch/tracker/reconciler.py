"""Track set reconciliation between a stored snapshot and a fresh fetch."""

from __future__ import annotations

from dataclasses import dataclass

from playwatch.storage.models import PlaylistSnapshot, TrackRecord

UNKNOWN_TRACK_NAME = "Unknown"


@dataclass
class TrackDiff:
    """Result of reconciling one playlist's track set."""

    removed: list[TrackRecord]  # stored order
    added: list[TrackRecord]  # fetch order
    snapshot: PlaylistSnapshot

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.added)


def _placeholder(track_id: str) -> TrackRecord:
    return TrackRecord(id=track_id, name=UNKNOWN_TRACK_NAME, artist=UNKNOWN_TRACK_NAME)


def reconcile_tracks(stored: PlaylistSnapshot, fetched: list[TrackRecord]) -> TrackDiff:
    """Diff *fetched* against *stored* and build the snapshot to persist.

    Removed tracks keep the order they had in the stored snapshot and are
    resolved from the stored detail cache (a missing entry becomes an
    ``"Unknown"`` placeholder).  Added tracks keep fetch order.  The new
    detail cache holds exactly the fetched ids, so ids that left the
    playlist never linger.

    An empty *fetched* list means every stored track was removed.
    """
    new_ids = [t.id for t in fetched]
    new_id_set = set(new_ids)
    stored_id_set = set(stored.track_ids)

    removed = [
        stored.track_details.get(tid) or _placeholder(tid)
        for tid in stored.track_ids
        if tid not in new_id_set
    ]
    added = [t for t in fetched if t.id not in stored_id_set]

    details = {tid: stored.track_details[tid] for tid in new_ids if tid in stored.track_details}
    for track in fetched:
        details[track.id] = track

    return TrackDiff(
        removed=removed,
        added=added,
        snapshot=PlaylistSnapshot(track_ids=new_ids, track_details=details),
    )
