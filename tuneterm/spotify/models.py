# tuneterm/spotify/models.py
"""
Simple models used by the client, the app state and the renderer.

Spotify Web API returns several slightly different shapes depending on endpoint:
- playlist tracks endpoint returns items like {"track": { ...track object... }, "added_at": "...", ...}
- saved tracks (me/tracks) uses the same envelope
- search returns plain track objects under tracks.items
- me/player returns {"item": {...track...}, "is_playing": ..., "progress_ms": ..., "device": {...}}

This module normalizes what's useful and keeps the original payload in `raw`.
"""

from __future__ import annotations
import time
from dataclasses import dataclass, field
from typing import List, Dict, Any, Iterable, Optional, Tuple

LIKED_SONGS_ID = "liked"


@dataclass
class Track:
    """
    Minimal representation of a track used across the app.
    The 'raw' field keeps the original Spotify payload for fields we don't normalize yet.
    """
    id: Optional[str]
    uri: Optional[str]
    name: str
    artists: List[Dict[str, Any]]
    duration_ms: Optional[int] = None
    album: Optional[Dict[str, Any]] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self):
        if self.artists is None:
            self.artists = []

    def artist_names(self) -> str:
        names = [a.get("name") for a in self.artists if a.get("name")]
        return ", ".join(names) if names else "Unknown"

    @classmethod
    def from_spotify_item(cls, item: Dict[str, Any]) -> "Track":
        """
        Accepts one of:
         - item from playlists/{id}/tracks or me/tracks -> {"track": {...}, "added_at": "..."}
         - plain track object -> {...}
        """
        track_obj = item.get("track") if isinstance(item, dict) and "track" in item else item

        if not isinstance(track_obj, dict):
            # removed / local-only tracks come back as null
            return cls(id=None, uri=None, name="(Unknown)", artists=[], raw=item or {})

        return cls(
            id=track_obj.get("id"),
            uri=track_obj.get("uri"),
            name=track_obj.get("name") or "(Unknown)",
            artists=track_obj.get("artists") or [],
            duration_ms=track_obj.get("duration_ms"),
            album=track_obj.get("album"),
            raw=track_obj,
        )


@dataclass
class Playlist:
    id: Optional[str]
    name: str
    owner_id: Optional[str] = None
    total_tracks: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def liked_songs(cls) -> "Playlist":
        return cls(id=LIKED_SONGS_ID, name="Liked Songs")


@dataclass(frozen=True)
class PlaybackSnapshot:
    """
    What the remote player is doing, as of `fetched_at`.

    active=False is the explicit "no active playback" variant; unknown=True
    means the last poll failed and nothing is known.
    progress_ms is always kept within 0..duration_ms.
    """
    track_id: Optional[str] = None
    track_uri: Optional[str] = None
    title: str = ""
    artist: str = ""
    is_playing: bool = False
    progress_ms: int = 0
    duration_ms: int = 0
    device_id: Optional[str] = None
    device_name: Optional[str] = None
    fetched_at: float = 0.0
    active: bool = True
    unknown: bool = False

    def __post_init__(self):
        duration = _non_negative_int(self.duration_ms)
        progress = min(_non_negative_int(self.progress_ms), duration)
        object.__setattr__(self, "duration_ms", duration)
        object.__setattr__(self, "progress_ms", progress)

    @classmethod
    def no_playback(cls, fetched_at: Optional[float] = None) -> "PlaybackSnapshot":
        return cls(active=False, fetched_at=time.time() if fetched_at is None else fetched_at)

    @classmethod
    def unknown_state(cls, fetched_at: Optional[float] = None) -> "PlaybackSnapshot":
        return cls(active=False, unknown=True, fetched_at=time.time() if fetched_at is None else fetched_at)

    @classmethod
    def from_spotify_payload(cls, payload: Optional[Dict[str, Any]], fetched_at: Optional[float] = None) -> "PlaybackSnapshot":
        """Build a snapshot from a me/player response (None/empty for 204)."""
        now = time.time() if fetched_at is None else fetched_at
        if not payload or not isinstance(payload, dict):
            return cls.no_playback(now)

        device = payload.get("device") or {}
        item = payload.get("item")
        if not device and not item:
            return cls.no_playback(now)

        track = Track.from_spotify_item(item) if isinstance(item, dict) else None
        return cls(
            track_id=track.id if track else None,
            track_uri=track.uri if track else None,
            title=track.name if track else "",
            artist=track.artist_names() if track else "",
            is_playing=bool(payload.get("is_playing")),
            progress_ms=payload.get("progress_ms") or 0,
            duration_ms=(track.duration_ms if track else 0) or 0,
            device_id=device.get("id"),
            device_name=device.get("name"),
            fetched_at=now,
        )


@dataclass(frozen=True)
class QueueView:
    """Upcoming tracks as last reported by the provider. Never edited locally."""
    tracks: Tuple[Track, ...] = ()
    fetched_at: float = 0.0

    @classmethod
    def from_spotify_payload(cls, payload: Optional[Dict[str, Any]], fetched_at: Optional[float] = None) -> "QueueView":
        now = time.time() if fetched_at is None else fetched_at
        if not payload:
            return cls(fetched_at=now)
        return cls(tracks=tuple(normalize_tracks(payload.get("queue") or [])), fetched_at=now)


# -------------------------
# small helpers
# -------------------------
def _non_negative_int(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 0
    return n if n > 0 else 0


def normalize_tracks(items: Iterable[Dict[str, Any]]) -> List[Track]:
    """
    Given an iterable of Spotify playlist items (or raw tracks),
    return a list of Track objects. Entries without a uri can't be played or queued, drop them.
    """
    out = []
    for it in items:
        tr = Track.from_spotify_item(it)
        if tr.uri:
            out.append(tr)
    return out


def playlist_from_spotify_payload(payload: Dict[str, Any]) -> Playlist:
    """
    Builds a playlist model from a simplified playlist object (me/playlists items).
    Intentionally permissive.
    """
    owner = None
    if isinstance(payload.get("owner"), dict):
        owner = payload["owner"].get("id")

    total = None
    tracks_field = payload.get("tracks")
    if isinstance(tracks_field, dict):
        total = tracks_field.get("total")

    return Playlist(
        id=payload.get("id"),
        name=payload.get("name") or "(Unnamed)",
        owner_id=owner,
        total_tracks=total,
        raw=payload,
    )
