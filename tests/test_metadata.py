"""Tests for playlist metadata change detection."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from playwatch.storage.models import MetadataRecord
from playwatch.tracker.events import MetadataField, RawMetadata
from playwatch.tracker.metadata import (
    detect_metadata_changes,
    extract_image_content_id,
    strip_query,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

_LARGE = "ab67616d0000b273"
_SMALL = "ab67616d00001e02"
_PIC_A = "0123456789abcdef01234567"
_PIC_B = "fedcba9876543210fedcba98"


def _image(prefix: str, content: str, query: str = "") -> str:
    url = f"https://i.scdn.co/image/{prefix}{content}"
    return f"{url}?{query}" if query else url


def _raw(**kw) -> RawMetadata:
    defaults = {
        "id": "pl1",
        "name": "Road Trip",
        "description": "songs for the car",
        "image_url": _image(_LARGE, _PIC_A),
        "snapshot_token": "snap-1",
    }
    defaults.update(kw)
    return RawMetadata(**defaults)


def _stored(**kw) -> MetadataRecord:
    base_url = kw.pop("image_base_url", _image(_LARGE, _PIC_A))
    defaults = {
        "id": "pl1",
        "name": "Road Trip",
        "description": "songs for the car",
        "image_base_url": base_url,
        "image_content_id": extract_image_content_id(base_url),
        "image_last_checked_at": NOW - timedelta(hours=1),
        "snapshot_token": "snap-1",
    }
    defaults.update(kw)
    return MetadataRecord(**defaults)


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def test_strip_query_removes_query_and_fragment():
    assert strip_query("https://i.scdn.co/image/abc?v=2&t=3#top") == "https://i.scdn.co/image/abc"


def test_strip_query_none():
    assert strip_query(None) is None


def test_content_id_ignores_rendition_prefix():
    large = extract_image_content_id(_image(_LARGE, _PIC_A))
    small = extract_image_content_id(_image(_SMALL, _PIC_A))
    assert large == small == _PIC_A


def test_content_id_differs_for_different_picture():
    assert extract_image_content_id(_image(_LARGE, _PIC_A)) != extract_image_content_id(_image(_LARGE, _PIC_B))


def test_content_id_mosaic():
    blob = "".join(_LARGE + p for p in (_PIC_A, _PIC_B, _PIC_A, _PIC_B))
    url = f"https://mosaic.scdn.co/640/{blob}"
    assert extract_image_content_id(url) == "-".join([_PIC_A, _PIC_B, _PIC_A, _PIC_B])


def test_content_id_mosaic_size_does_not_matter():
    blob = "".join(_LARGE + p for p in (_PIC_A, _PIC_B, _PIC_A, _PIC_B))
    assert extract_image_content_id(f"https://mosaic.scdn.co/640/{blob}") == extract_image_content_id(
        f"https://mosaic.scdn.co/300/{blob}"
    )


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/cover.jpg",
        "https://i.scdn.co/image/not-hex",
        "https://image-cdn-ak.spotifycdn.com/image/short",
    ],
)
def test_content_id_falls_back_to_url(url: str):
    assert extract_image_content_id(url) == url


def test_content_id_none():
    assert extract_image_content_id(None) is None


# ---------------------------------------------------------------------------
# Change detection
# ---------------------------------------------------------------------------


def test_first_sighting_is_baseline():
    diff = detect_metadata_changes(None, _raw(), now=NOW)

    assert not diff.changed
    assert diff.events == []
    assert diff.record.name == "Road Trip"
    assert diff.record.image_content_id == _PIC_A
    assert diff.record.image_last_checked_at == NOW


def test_no_change():
    diff = detect_metadata_changes(_stored(), _raw(), now=NOW)
    assert not diff.changed
    assert diff.events == []


def test_query_string_change_is_not_an_image_change():
    diff = detect_metadata_changes(_stored(), _raw(image_url=_image(_LARGE, _PIC_A, "cb=123")), now=NOW)
    assert not diff.image_changed
    assert diff.record.image_base_url == _image(_LARGE, _PIC_A)


def test_name_change():
    diff = detect_metadata_changes(_stored(), _raw(name="Night Drive"), now=NOW)

    assert diff.name_changed
    assert len(diff.events) == 1
    event = diff.events[0]
    assert event.field is MetadataField.NAME
    assert event.old_value == "Road Trip"
    assert event.new_value == "Night Drive"
    assert event.playlist_name == "Night Drive"


def test_description_change():
    diff = detect_metadata_changes(_stored(), _raw(description=""), now=NOW)

    assert diff.description_changed
    assert [e.field for e in diff.events] == [MetadataField.DESCRIPTION]
    assert diff.events[0].old_value == "songs for the car"
    assert diff.events[0].new_value == ""


def test_image_change_suppressed_within_debounce():
    diff = detect_metadata_changes(_stored(), _raw(image_url=_image(_LARGE, _PIC_B)), now=NOW)

    assert not diff.image_changed
    assert diff.image_suppressed
    assert diff.events == []
    # the new image is still recorded
    assert diff.record.image_content_id == _PIC_B
    assert diff.record.image_last_checked_at == NOW


def test_image_change_accepted_when_token_moves():
    diff = detect_metadata_changes(
        _stored(),
        _raw(image_url=_image(_LARGE, _PIC_B), snapshot_token="snap-2"),
        now=NOW,
    )

    assert diff.image_changed
    assert len(diff.events) == 1
    event = diff.events[0]
    assert event.field is MetadataField.IMAGE
    assert event.old_value == _image(_LARGE, _PIC_A)
    assert event.new_value == _image(_LARGE, _PIC_B)


def test_image_change_accepted_after_debounce_window():
    stored = _stored(image_last_checked_at=NOW - timedelta(hours=25))
    diff = detect_metadata_changes(stored, _raw(image_url=_image(_LARGE, _PIC_B)), now=NOW)
    assert diff.image_changed
    assert not diff.image_suppressed


def test_custom_debounce_window():
    stored = _stored(image_last_checked_at=NOW - timedelta(hours=2))
    diff = detect_metadata_changes(
        stored,
        _raw(image_url=_image(_LARGE, _PIC_B)),
        now=NOW,
        debounce=timedelta(hours=1),
    )
    assert diff.image_changed


def test_image_removed():
    diff = detect_metadata_changes(_stored(), _raw(image_url=None, snapshot_token="snap-2"), now=NOW)
    assert diff.image_changed
    assert diff.events[0].old_value == _image(_LARGE, _PIC_A)
    assert diff.events[0].new_value is None


def test_events_ordered_name_description_image():
    diff = detect_metadata_changes(
        _stored(),
        _raw(
            name="New",
            description="new description",
            image_url=_image(_LARGE, _PIC_B),
            snapshot_token="snap-2",
        ),
        now=NOW,
    )
    assert [e.field for e in diff.events] == [
        MetadataField.NAME,
        MetadataField.DESCRIPTION,
        MetadataField.IMAGE,
    ]


def test_record_always_replaced():
    diff = detect_metadata_changes(_stored(), _raw(snapshot_token="snap-9"), now=NOW)
    assert not diff.changed
    assert diff.record.snapshot_token == "snap-9"
    assert diff.record.image_last_checked_at == NOW
