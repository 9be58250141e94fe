"""Tests for notification message rendering."""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from playwatch.notify.formatting import (
    format_header,
    format_metadata_changes,
    format_timestamp,
    format_track,
    render_events,
    split_message,
    strip_tags,
)
from playwatch.storage.models import TrackRecord
from playwatch.tracker.events import MetadataChanged, MetadataField, TracksAdded, TracksRemoved

MANILA = ZoneInfo("Asia/Manila")


def _track(track_id: str, name: str = "Song") -> TrackRecord:
    return TrackRecord(
        id=track_id,
        name=name,
        artist="Artist",
        added_at=datetime(2024, 5, 1, 10, 0, 5, tzinfo=UTC),
        url=f"https://open.spotify.com/track/{track_id}",
    )


def _meta(field: MetadataField, old: str | None, new: str | None, playlist_id: str = "pl1") -> MetadataChanged:
    return MetadataChanged(playlist_id=playlist_id, playlist_name="New Name", field=field, old_value=old, new_value=new)


# ---------------------------------------------------------------------------
# Pieces
# ---------------------------------------------------------------------------


def test_format_timestamp_uses_timezone():
    assert format_timestamp(datetime(2024, 5, 1, 20, 0, 5, tzinfo=UTC), MANILA) == "2/5/2024, 04:00:05"


def test_format_track_escapes_html():
    text = format_track(_track("t1", name="Rock & <Roll>"), UTC)
    assert "<b>Rock &amp; &lt;Roll&gt;</b>" in text
    assert "<i>Added on 1/5/2024, 10:00:05</i>" in text
    assert '<a href="https://open.spotify.com/track/t1">Listen on Spotify</a>' in text


def test_format_track_removed_wording():
    assert "Was added on" in format_track(_track("t1"), UTC, added=False)


def test_format_track_without_optional_fields():
    text = format_track(TrackRecord(id="t1", name="Unknown", artist="Unknown"), UTC)
    assert text == "<b>Unknown</b>\nUnknown"


def test_format_header():
    assert format_header("Mix", 1) == "☆ <b>1 Song Added to <i>Mix</i></b> ☆"
    assert format_header("Mix", 3, added=False) == "♡ <b>3 Songs Removed from <i>Mix</i></b> ♡"


def test_strip_tags():
    assert strip_tags("<b>Rock &amp; Roll</b>") == "Rock & Roll"


# ---------------------------------------------------------------------------
# Metadata messages
# ---------------------------------------------------------------------------


def test_metadata_message_lists_all_changes():
    message = format_metadata_changes(
        [
            _meta(MetadataField.NAME, "Old Name", "New Name"),
            _meta(MetadataField.DESCRIPTION, "", "fresh"),
        ]
    )
    assert message.text.startswith("<b>✿ <i>Old Name</i> updated! ✿</b>")
    assert "<i>Old Name</i> ➔ <b>New Name</b>" in message.text
    assert "(empty) ➔ <b>fresh</b>" in message.text
    assert "https://open.spotify.com/playlist/pl1" in message.text
    assert message.photo_url is None


def test_metadata_message_with_image_has_photo():
    message = format_metadata_changes(
        [_meta(MetadataField.IMAGE, "https://i.scdn.co/image/old", "https://i.scdn.co/image/new")]
    )
    assert "Previous Image" in message.text
    assert message.photo_url == "https://i.scdn.co/image/new"
    assert message.photo_caption == "New cover image for playlist: <b>New Name</b>"


# ---------------------------------------------------------------------------
# render_events
# ---------------------------------------------------------------------------


def test_render_events_groups_metadata_per_playlist():
    events = [
        _meta(MetadataField.NAME, "A", "B"),
        _meta(MetadataField.DESCRIPTION, "x", "y"),
        TracksRemoved(playlist_id="pl1", playlist_name="B", tracks=[_track("t1")]),
        TracksAdded(playlist_id="pl1", playlist_name="B", tracks=[_track("t2"), _track("t3")]),
        _meta(MetadataField.NAME, "C", "D", playlist_id="pl2"),
    ]
    messages = render_events(events, UTC)

    assert len(messages) == 4
    assert "Name:" in messages[0].text
    assert "Description:" in messages[0].text
    assert "1 Song Removed from" in messages[1].text
    assert "2 Songs Added to" in messages[2].text
    assert "<i>C</i> updated!" in messages[3].text


def test_render_events_empty():
    assert render_events([], UTC) == []


# ---------------------------------------------------------------------------
# split_message
# ---------------------------------------------------------------------------


def test_split_short_message_unchanged():
    assert split_message("hello\n\nworld") == ["hello\n\nworld"]


def test_split_on_blank_lines():
    blocks = [f"block {i} " + "x" * 40 for i in range(10)]
    chunks = split_message("\n\n".join(blocks), max_length=120)

    assert len(chunks) > 1
    assert all(len(c) <= 120 for c in chunks)
    assert "\n\n".join(chunks) == "\n\n".join(blocks)


def test_split_hard_cuts_oversized_block():
    chunks = split_message("y" * 250, max_length=100)
    assert [len(c) for c in chunks] == [100, 100, 50]
