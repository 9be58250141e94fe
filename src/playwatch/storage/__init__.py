"""playwatch storage layer: async SQLite key-value store for snapshots and tracked playlists."""

from playwatch.storage.database import Database
from playwatch.storage.models import (
    MetadataRecord,
    PlaylistSnapshot,
    TrackedPlaylist,
    TrackRecord,
)

__all__ = [
    "Database",
    "MetadataRecord",
    "PlaylistSnapshot",
    "TrackRecord",
    "TrackedPlaylist",
]
