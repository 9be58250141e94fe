"""Render change events as Telegram HTML messages."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from datetime import datetime, tzinfo

from playwatch.storage.models import TrackRecord
from playwatch.tracker.events import (
    ChangeEvent,
    MetadataChanged,
    MetadataField,
    TracksAdded,
    TracksRemoved,
)

MAX_MESSAGE_LENGTH = 4000
PLAYLIST_URL = "https://open.spotify.com/playlist/{}"

_TAG_RE = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class Message:
    """One notification: HTML text, optionally followed by a photo."""

    text: str
    photo_url: str | None = None
    photo_caption: str | None = None


def _e(text: str | None) -> str:
    return html.escape(text or "", quote=False)


def _link(url: str, label: str) -> str:
    return f'<a href="{html.escape(url, quote=True)}">{_e(label)}</a>'


def format_timestamp(value: datetime, tz: tzinfo) -> str:
    """Format *value* as ``D/M/YYYY, HH:MM:SS`` in *tz*."""
    local = value.astimezone(tz)
    return f"{local.day}/{local.month}/{local.year}, {local:%H:%M:%S}"


def strip_tags(text: str) -> str:
    """Turn an HTML message back into plain text."""
    return html.unescape(_TAG_RE.sub("", text))


def format_track(track: TrackRecord, tz: tzinfo, *, added: bool = True) -> str:
    lines = [f"<b>{_e(track.name)}</b>", _e(track.artist)]
    if track.added_at:
        verb = "Added" if added else "Was added"
        lines.append(f"<i>{verb} on {format_timestamp(track.added_at, tz)}</i>")
    if track.url:
        lines.append(_link(track.url, "Listen on Spotify"))
    return "\n".join(lines)


def format_header(playlist_name: str, count: int, *, added: bool = True) -> str:
    symbol = "☆" if added else "♡"
    action = "Added to" if added else "Removed from"
    noun = "Song" if count == 1 else "Songs"
    return f"{symbol} <b>{count} {noun} {action} <i>{_e(playlist_name)}</i></b> {symbol}"


def format_track_event(event: TracksAdded | TracksRemoved, tz: tzinfo) -> str:
    added = isinstance(event, TracksAdded)
    header = format_header(event.playlist_name, len(event.tracks), added=added)
    blocks = [format_track(t, tz, added=added) for t in event.tracks]
    return "\n\n".join([header, *blocks])


def format_metadata_changes(changes: list[MetadataChanged]) -> Message:
    """Render all metadata changes of one playlist as a single message."""
    first = changes[0]
    old_name = next((c.old_value for c in changes if c.field is MetadataField.NAME), first.playlist_name)
    parts = [f"<b>✿ <i>{_e(old_name)}</i> updated! ✿</b>"]
    photo_url = None

    for change in changes:
        if change.field is MetadataField.NAME:
            parts.append(f"Name:\n<i>{_e(change.old_value)}</i> ➔ <b>{_e(change.new_value)}</b>")
        elif change.field is MetadataField.DESCRIPTION:
            old = f"<i>{_e(change.old_value)}</i>" if change.old_value else "(empty)"
            new = f"<b>{_e(change.new_value)}</b>" if change.new_value else "(empty)"
            parts.append(f"Description:\n{old} ➔ {new}")
        elif change.field is MetadataField.IMAGE:
            line = "<b>Image:</b> Changed"
            if change.old_value and change.new_value:
                line += f"\n{_link(change.old_value, 'Previous Image')} ➔ {_link(change.new_value, 'New Image')}"
            elif change.new_value:
                line += f"\n{_link(change.new_value, 'New Image Added')}"
            elif change.old_value:
                line += f"\n{_link(change.old_value, 'Image Removed')}"
            parts.append(line)
            photo_url = change.new_value

    parts.append(_link(PLAYLIST_URL.format(first.playlist_id), "Open Playlist"))
    caption = f"New cover image for playlist: <b>{_e(first.playlist_name)}</b>" if photo_url else None
    return Message(text="\n\n".join(parts), photo_url=photo_url, photo_caption=caption)


def render_events(events: list[ChangeEvent], tz: tzinfo) -> list[Message]:
    """Render events in order.

    Consecutive metadata changes of the same playlist are merged into one
    message; every track event gets its own message.
    """
    messages: list[Message] = []
    pending: list[MetadataChanged] = []

    def _flush() -> None:
        if pending:
            messages.append(format_metadata_changes(pending))
            pending.clear()

    for event in events:
        if isinstance(event, MetadataChanged):
            if pending and pending[0].playlist_id != event.playlist_id:
                _flush()
            pending.append(event)
            continue
        _flush()
        messages.append(Message(text=format_track_event(event, tz)))

    _flush()
    return messages


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split *text* into chunks of at most *max_length* characters.

    Splits only on blank lines so a song block stays in one piece; a single
    block longer than *max_length* is cut hard.
    """
    chunks: list[str] = []
    current = ""

    for block in text.split("\n\n"):
        while len(block) > max_length:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(block[:max_length])
            block = block[max_length:]

        candidate = f"{current}\n\n{block}" if current else block
        if len(candidate) > max_length:
            chunks.append(current)
            current = block
        else:
            current = candidate

    if current.strip():
        chunks.append(current)
    return [c.strip() for c in chunks if c.strip()]
