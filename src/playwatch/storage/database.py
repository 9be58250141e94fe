"""Async SQLite database for the playwatch storage layer.

Snapshots and metadata are stored as whole JSON documents keyed by playlist
id; every write replaces the full record.  A payload that can no longer be
parsed is treated as missing, since tracking state is rebuilt from the next
fetch anyway.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import structlog
from pydantic import ValidationError

from playwatch.storage.models import (
    MetadataRecord,
    PlaylistSnapshot,
    TrackedPlaylist,
)

log = structlog.get_logger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS track_snapshot (
    playlist_id TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS playlist_metadata (
    playlist_id TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tracked_playlist (
    id TEXT PRIMARY KEY,
    name TEXT,
    position INTEGER NOT NULL,
    added_at TEXT NOT NULL
);
"""


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class Database:
    """Async SQLite wrapper acting as the snapshot store and entity registry."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._conn: aiosqlite.Connection | None = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "Database not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._conn

    async def connect(self) -> None:
        try:
            await self._open()
        except sqlite3.DatabaseError as exc:
            # Unreadable file: keep it aside for inspection and start fresh.
            log.warning("database_corrupt", path=str(self.path), error=str(exc))
            await self.close()
            self.path.replace(self.path.with_name(self.path.name + ".corrupt"))
            await self._open()

    async def _open(self) -> None:
        self._conn = await aiosqlite.connect(self.path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    # -- track_snapshot -------------------------------------------------------

    async def load_track_snapshot(self, playlist_id: str) -> PlaylistSnapshot:
        """Return the stored snapshot, or an empty one if missing or corrupt."""
        try:
            payload = await self._load_payload("track_snapshot", playlist_id)
            if payload is None:
                return PlaylistSnapshot()
            return PlaylistSnapshot.model_validate_json(payload)
        except (UnicodeDecodeError, ValidationError) as exc:
            log.warning("snapshot_corrupt", playlist_id=playlist_id, error=str(exc))
            await self._delete_payload("track_snapshot", playlist_id)
            return PlaylistSnapshot()

    async def save_track_snapshot(self, playlist_id: str, snapshot: PlaylistSnapshot) -> None:
        await self._put_payload("track_snapshot", playlist_id, snapshot.model_dump_json())
        await self.conn.commit()

    # -- playlist_metadata ----------------------------------------------------

    async def load_metadata(self, playlist_id: str) -> MetadataRecord | None:
        """Return the stored metadata, or *None* if missing or corrupt."""
        try:
            payload = await self._load_payload("playlist_metadata", playlist_id)
            if payload is None:
                return None
            return MetadataRecord.model_validate_json(payload)
        except (UnicodeDecodeError, ValidationError) as exc:
            log.warning("metadata_corrupt", playlist_id=playlist_id, error=str(exc))
            await self._delete_payload("playlist_metadata", playlist_id)
            return None

    async def save_metadata(self, playlist_id: str, record: MetadataRecord) -> None:
        await self._put_payload("playlist_metadata", playlist_id, record.model_dump_json())
        await self.conn.commit()

    # -- per-entity write -----------------------------------------------------

    async def save_entity(
        self,
        playlist_id: str,
        snapshot: PlaylistSnapshot,
        metadata: MetadataRecord,
    ) -> None:
        """Persist both halves of a playlist's state in a single transaction."""
        try:
            await self._put_payload("track_snapshot", playlist_id, snapshot.model_dump_json())
            await self._put_payload("playlist_metadata", playlist_id, metadata.model_dump_json())
        except Exception:
            await self.conn.rollback()
            raise
        await self.conn.commit()

    async def forget_playlist(self, playlist_id: str) -> None:
        """Drop all stored state for a playlist."""
        await self.conn.execute("DELETE FROM track_snapshot WHERE playlist_id = ?", (playlist_id,))
        await self.conn.execute("DELETE FROM playlist_metadata WHERE playlist_id = ?", (playlist_id,))
        await self.conn.commit()

    # -- tracked_playlist -----------------------------------------------------

    async def list_tracked_playlists(self) -> list[TrackedPlaylist]:
        cur = await self.conn.execute("SELECT * FROM tracked_playlist ORDER BY position, added_at")
        rows = await cur.fetchall()
        return [self._row_to_tracked_playlist(r) for r in rows]

    async def get_tracked_playlist(self, playlist_id: str) -> TrackedPlaylist | None:
        cur = await self.conn.execute("SELECT * FROM tracked_playlist WHERE id = ?", (playlist_id,))
        row = await cur.fetchone()
        return self._row_to_tracked_playlist(row) if row else None

    async def add_tracked_playlist(self, playlist_id: str, name: str | None = None) -> bool:
        """Start tracking a playlist.  Returns False if it is already tracked."""
        cur = await self.conn.execute(
            """
            INSERT INTO tracked_playlist (id, name, position, added_at)
            VALUES (?, ?, (SELECT COALESCE(MAX(position), -1) + 1 FROM tracked_playlist), ?)
            ON CONFLICT (id) DO NOTHING
            """,
            (playlist_id, name, _now_iso()),
        )
        await self.conn.commit()
        return cur.rowcount > 0

    async def remove_tracked_playlist(self, playlist_id: str) -> bool:
        """Stop tracking a playlist.  Returns False if it was not tracked."""
        cur = await self.conn.execute("DELETE FROM tracked_playlist WHERE id = ?", (playlist_id,))
        await self.conn.commit()
        return cur.rowcount > 0

    async def rename_tracked_playlist(self, playlist_id: str, name: str) -> None:
        await self.conn.execute("UPDATE tracked_playlist SET name = ? WHERE id = ?", (name, playlist_id))
        await self.conn.commit()

    # -- payload helpers ------------------------------------------------------

    async def _load_payload(self, table: str, playlist_id: str) -> str | None:
        """Read a payload as text.  Raises ``UnicodeDecodeError`` for undecodable bytes."""
        # Read as a blob: sqlite3 fails inside fetchone() on non-UTF-8 TEXT.
        cur = await self.conn.execute(
            f"SELECT CAST(payload AS BLOB) AS payload FROM {table} WHERE playlist_id = ?",  # noqa: S608
            (playlist_id,),
        )
        row = await cur.fetchone()
        return bytes(row["payload"]).decode("utf-8") if row else None

    async def _put_payload(self, table: str, playlist_id: str, payload: str) -> None:
        await self.conn.execute(
            f"""
            INSERT INTO {table} (playlist_id, payload, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT (playlist_id) DO UPDATE SET
                payload = excluded.payload,
                updated_at = excluded.updated_at
            """,  # noqa: S608
            (playlist_id, payload, _now_iso()),
        )

    async def _delete_payload(self, table: str, playlist_id: str) -> None:
        await self.conn.execute(
            f"DELETE FROM {table} WHERE playlist_id = ?",  # noqa: S608
            (playlist_id,),
        )
        await self.conn.commit()

    # -- row → model helpers --------------------------------------------------

    @staticmethod
    def _row_to_tracked_playlist(row: aiosqlite.Row) -> TrackedPlaylist:
        return TrackedPlaylist(
            id=row["id"],
            name=row["name"],
            position=row["position"],
            added_at=row["added_at"],
        )
