"""Playlist metadata change detection.

Name and description are compared verbatim.  Cover images are compared by a
content id extracted from the image URL, and a differing id is only trusted
when the provider's snapshot token moved as well, or when the last check is
older than the debounce window.  Spotify's CDN regularly rewrites image URLs
for the same picture; without the debounce every rewrite would be reported.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from urllib.parse import urlsplit

import structlog

from playwatch.storage.models import MetadataRecord
from playwatch.tracker.events import MetadataChanged, MetadataField, RawMetadata

log = structlog.get_logger(__name__)

IMAGE_DEBOUNCE = timedelta(hours=24)

# Spotify image ids: 16 hex chars of rendition (size/format) + 24 hex chars of content.
_IMAGE_ID_LEN = 40
_RENDITION_PREFIX_LEN = 16
_HEX_RE = re.compile(r"^[0-9a-f]+$")
_SPOTIFY_IMAGE_HOSTS = ("scdn.co", "spotifycdn.com")


def strip_query(url: str | None) -> str | None:
    """Drop the query string and fragment from *url*."""
    if not url:
        return url
    return urlsplit(url)._replace(query="", fragment="").geturl()


def _content_part(image_id: str) -> str:
    return image_id[_RENDITION_PREFIX_LEN:]


def extract_image_content_id(base_url: str | None) -> str | None:
    """Return a stable id for the picture behind *base_url*.

    Handles single covers (``/image/<id>``) and mosaic covers
    (``mosaic.scdn.co/<size>/<id><id>...``); any other URL shape is its own id.
    """
    if not base_url:
        return None

    parts = urlsplit(base_url)
    host = (parts.hostname or "").lower()
    if not host.endswith(_SPOTIFY_IMAGE_HOSTS):
        return base_url

    segments = [s for s in parts.path.split("/") if s]
    if len(segments) != 2:
        return base_url
    kind, blob = segments
    blob = blob.lower()
    if not _HEX_RE.match(blob):
        return base_url

    if kind == "image" and len(blob) == _IMAGE_ID_LEN:
        return _content_part(blob)

    if host.startswith("mosaic.") and kind.isdigit() and len(blob) % _IMAGE_ID_LEN == 0:
        chunks = [blob[i : i + _IMAGE_ID_LEN] for i in range(0, len(blob), _IMAGE_ID_LEN)]
        return "-".join(_content_part(c) for c in chunks)

    return base_url


@dataclass
class MetadataDiff:
    """Outcome of comparing stored and fetched metadata."""

    record: MetadataRecord  # always the record to persist
    name_changed: bool = False
    description_changed: bool = False
    image_changed: bool = False
    image_suppressed: bool = False
    events: list[MetadataChanged] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.name_changed or self.description_changed or self.image_changed


def _build_record(fetched: RawMetadata, now: datetime) -> MetadataRecord:
    base_url = strip_query(fetched.image_url)
    return MetadataRecord(
        id=fetched.id,
        name=fetched.name,
        description=fetched.description,
        image_base_url=base_url,
        image_content_id=extract_image_content_id(base_url),
        image_last_checked_at=now,
        snapshot_token=fetched.snapshot_token,
    )


def detect_metadata_changes(
    stored: MetadataRecord | None,
    fetched: RawMetadata,
    *,
    now: datetime,
    debounce: timedelta = IMAGE_DEBOUNCE,
) -> MetadataDiff:
    """Compare *fetched* metadata with the *stored* record.

    The returned ``record`` replaces the stored one unconditionally.  A first
    sighting (no stored record) only establishes the baseline and never
    reports a change.
    """
    record = _build_record(fetched, now)
    if stored is None:
        log.info("metadata_baseline", playlist_id=fetched.id, name=fetched.name)
        return MetadataDiff(record=record)

    diff = MetadataDiff(record=record)
    diff.name_changed = stored.name != record.name
    diff.description_changed = stored.description != record.description

    if stored.image_content_id != record.image_content_id:
        token_moved = stored.snapshot_token != record.snapshot_token
        window_elapsed = now - stored.image_last_checked_at > debounce
        if token_moved or window_elapsed:
            diff.image_changed = True
        else:
            diff.image_suppressed = True
            log.info(
                "image_change_suppressed",
                playlist_id=fetched.id,
                old_image_id=stored.image_content_id,
                new_image_id=record.image_content_id,
                last_checked_at=stored.image_last_checked_at.isoformat(),
            )

    def _event(kind: MetadataField, old: str | None, new: str | None) -> MetadataChanged:
        return MetadataChanged(
            playlist_id=fetched.id,
            playlist_name=record.name,
            field=kind,
            old_value=old,
            new_value=new,
        )

    if diff.name_changed:
        diff.events.append(_event(MetadataField.NAME, stored.name, record.name))
    if diff.description_changed:
        diff.events.append(_event(MetadataField.DESCRIPTION, stored.description, record.description))
    if diff.image_changed:
        diff.events.append(_event(MetadataField.IMAGE, stored.image_base_url, record.image_base_url))

    if diff.changed:
        log.info(
            "metadata_changed",
            playlist_id=fetched.id,
            fields=[e.field.value for e in diff.events],
        )
    return diff
