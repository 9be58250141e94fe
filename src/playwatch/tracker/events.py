"""Fetched playlist state and the change events produced by a check pass."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from playwatch.storage.models import TrackRecord


@dataclass(frozen=True)
class RawMetadata:
    """Playlist metadata as returned by the provider."""

    id: str
    name: str
    description: str = ""
    image_url: str | None = None  # may carry cache-busting query params
    snapshot_token: str | None = None  # provider's "content changed" marker


@dataclass(frozen=True)
class FetchedPlaylist:
    """Current state of a playlist: metadata plus tracks in playlist order."""

    metadata: RawMetadata
    tracks: list[TrackRecord] = field(default_factory=list)


class MetadataField(StrEnum):
    NAME = "name"
    DESCRIPTION = "description"
    IMAGE = "image"


@dataclass(frozen=True)
class TracksAdded:
    playlist_id: str
    playlist_name: str
    tracks: list[TrackRecord]


@dataclass(frozen=True)
class TracksRemoved:
    playlist_id: str
    playlist_name: str
    tracks: list[TrackRecord]


@dataclass(frozen=True)
class MetadataChanged:
    """A single metadata field changed.

    For ``MetadataField.IMAGE`` the values are the old and new image base URLs.
    """

    playlist_id: str
    playlist_name: str
    field: MetadataField
    old_value: str | None
    new_value: str | None


ChangeEvent = TracksAdded | TracksRemoved | MetadataChanged
