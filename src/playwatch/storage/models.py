"""Pydantic models for the playwatch storage layer."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TrackRecord(BaseModel):
    """A single track as last seen in a playlist.  Identity is ``id``."""

    id: str
    name: str
    artist: str
    added_at: datetime | None = None
    url: str | None = None


class PlaylistSnapshot(BaseModel):
    """Last persisted track set of a playlist.

    ``track_ids`` keeps fetch order; ``track_details`` holds exactly one
    record per id in ``track_ids``.
    """

    track_ids: list[str] = Field(default_factory=list)
    track_details: dict[str, TrackRecord] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.track_ids


class MetadataRecord(BaseModel):
    """Last persisted playlist metadata."""

    id: str
    name: str
    description: str = ""
    image_base_url: str | None = None  # query string stripped
    image_content_id: str | None = None  # derived from image_base_url
    image_last_checked_at: datetime
    snapshot_token: str | None = None


class TrackedPlaylist(BaseModel):
    """Entity registry entry: a playlist being watched."""

    id: str
    name: str | None = None
    position: int = 0
    added_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.id
