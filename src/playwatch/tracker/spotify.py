"""Async Spotify Web API client using httpx.

Endpoints:
- POST accounts /api/token (client-credentials grant)
- GET /playlists/{id} (metadata + first page of tracks)
- GET tracks.next (following pages, absolute URLs)
"""

from __future__ import annotations

import asyncio
import re
import time

import httpx
import structlog

from playwatch.config import SpotifyConfig
from playwatch.storage.models import TrackRecord
from playwatch.tracker.events import FetchedPlaylist, RawMetadata

log = structlog.get_logger(__name__)

_API_BASE = "https://api.spotify.com/v1"
_TOKEN_URL = "https://accounts.spotify.com/api/token"  # noqa: S105
_MAX_RETRIES = 3

UNKNOWN_ARTIST = "Unknown Artist"
UNAVAILABLE_TRACK = "Unavailable Track"

_PLAYLIST_REF_RE = re.compile(r"(?:spotify:playlist:|open\.spotify\.com/(?:[\w-]+/)?playlist/)([A-Za-z0-9]+)")
_PLAYLIST_ID_RE = re.compile(r"^[A-Za-z0-9]+$")


class FetchError(Exception):
    """Raised when a playlist could not be fetched."""


class SpotifyAuthError(FetchError):
    """Raised when Spotify authentication fails."""


class SpotifyAPIError(FetchError):
    """Raised for non-retryable Spotify API errors."""


class PlaylistNotFoundError(SpotifyAPIError):
    """Raised when the playlist does not exist or is not visible."""


def _parse_track(item: dict) -> TrackRecord | None:
    """Build a TrackRecord from a playlist item, or *None* if it has no usable id."""
    track = item.get("track")
    if not track or not track.get("id"):
        return None

    artists = ", ".join(a["name"] for a in track.get("artists") or [] if a.get("name"))
    return TrackRecord(
        id=track["id"],
        name=track.get("name") or UNAVAILABLE_TRACK,
        artist=artists or UNKNOWN_ARTIST,
        added_at=item.get("added_at"),
        url=(track.get("external_urls") or {}).get("spotify"),
    )


def _parse_metadata(data: dict) -> RawMetadata:
    images = data.get("images") or []
    return RawMetadata(
        id=data["id"],
        name=data.get("name") or "",
        description=data.get("description") or "",
        image_url=images[0].get("url") if images else None,
        snapshot_token=data.get("snapshot_id"),
    )


def _retry_after(resp: httpx.Response, default: float = 1.0) -> float:
    """Seconds to wait from a 429 response; unparseable or negative values use *default*."""
    try:
        value = float(resp.headers.get("Retry-After", default))
    except ValueError:
        return default
    return value if 0 <= value < float("inf") else default


class SpotifyClient:
    """Async Spotify Web API client authenticated with client credentials."""

    def __init__(
        self,
        config: SpotifyConfig,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = _transport
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SpotifyClient:
        kw: dict = {"timeout": 30.0}
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # -- auth --

    async def _ensure_token(self, *, force: bool = False) -> str:
        if not force and self._access_token and time.time() < self._token_expires_at - 60:
            return self._access_token

        assert self._client is not None  # noqa: S101
        try:
            resp = await self._client.post(
                _TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(self._config.client_id, self._config.client_secret.get_secret_value()),
            )
        except httpx.TransportError as exc:
            raise SpotifyAuthError(f"Token request failed: {exc}") from exc

        if resp.status_code != 200:
            raise SpotifyAuthError(f"Token request failed: {resp.status_code} {resp.text}")

        data = resp.json()
        self._access_token = data["access_token"]
        self._token_expires_at = time.time() + data.get("expires_in", 3600)
        return self._access_token

    # -- request helper --

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict | None = None,
    ) -> httpx.Response:
        assert self._client is not None  # noqa: S101

        for attempt in range(_MAX_RETRIES):
            token = await self._ensure_token()
            headers = {"Authorization": f"Bearer {token}"}

            try:
                resp = await self._client.request(method, url, headers=headers, params=params)
            except httpx.TransportError as exc:
                if attempt >= _MAX_RETRIES - 1:
                    raise SpotifyAPIError(f"Network error after {_MAX_RETRIES} retries: {exc}") from exc
                wait = 2**attempt
                log.warning(
                    "spotify_network_error",
                    error=str(exc),
                    retry_in=wait,
                    attempt=attempt,
                )
                await asyncio.sleep(wait)
                continue

            if resp.status_code == 401 and attempt == 0:
                # Token expired mid-request, force refresh
                await self._ensure_token(force=True)
                continue

            if resp.status_code == 401:
                raise SpotifyAuthError("Spotify authentication failed after token refresh")

            if resp.status_code == 429:
                retry_after = _retry_after(resp)
                log.warning(
                    "spotify_rate_limited",
                    retry_after=retry_after,
                    attempt=attempt,
                )
                await asyncio.sleep(retry_after)
                continue

            if resp.status_code == 404:
                raise PlaylistNotFoundError(f"Not found: {url}")

            if resp.status_code >= 400:
                raise SpotifyAPIError(f"Spotify API error: {resp.status_code} {resp.text}")

            return resp

        raise SpotifyAPIError(f"Max retries ({_MAX_RETRIES}) exceeded")

    # -- public API --

    async def fetch_playlist(self, playlist_id: str) -> FetchedPlaylist:
        """Fetch a playlist's metadata and all of its tracks, in playlist order.

        Items without a track id (removed, unavailable or local files) are
        dropped; a track listed twice is kept at its first position.
        """
        resp = await self._request("GET", f"{_API_BASE}/playlists/{playlist_id}")
        data = resp.json()
        metadata = _parse_metadata(data)

        tracks: list[TrackRecord] = []
        seen: set[str] = set()
        page = data.get("tracks") or {}

        while True:
            for item in page.get("items") or []:
                track = _parse_track(item)
                if track is None or track.id in seen:
                    continue
                seen.add(track.id)
                tracks.append(track)

            next_url = page.get("next")
            if not next_url:
                break
            resp = await self._request("GET", next_url)
            page = resp.json()

        log.debug("playlist_fetched", playlist_id=playlist_id, tracks=len(tracks))
        return FetchedPlaylist(metadata=metadata, tracks=tracks)


def parse_playlist_ref(value: str) -> str:
    """Extract a playlist id from a bare id, a ``spotify:playlist:`` URI or an open.spotify.com URL.

    Raises ``ValueError`` when *value* is none of those.
    """
    value = value.strip()
    match = _PLAYLIST_REF_RE.search(value)
    if match:
        return match.group(1)
    if _PLAYLIST_ID_RE.match(value):
        return value
    raise ValueError(f"Not a Spotify playlist id, URI or URL: {value!r}")
