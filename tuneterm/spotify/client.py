# tuneterm/spotify/client.py
import logging
from typing import Any, Dict, List, Optional

import requests

from tuneterm.spotify.errors import (
    NetworkFailure,
    NoActiveDevice,
    NotFound,
    PremiumRequired,
    RateLimited,
    RemoteError,
    Unauthorized,
)
from tuneterm.spotify.models import (
    LIKED_SONGS_ID,
    PlaybackSnapshot,
    Playlist,
    QueueView,
    Track,
    normalize_tracks,
    playlist_from_spotify_payload,
)
from tuneterm.spotify.tokens import TokenStore

logger = logging.getLogger(__name__)


class SpotifyClient:
    """
    Wrapper around Spotify Web API.
    Handles auth + the playlist/search/playback pieces the terminal client uses.

    Calls block; run them off the UI thread (player/actions.py, player/polling.py).
    """

    BASE_URL = "https://api.spotify.com/v1"

    def __init__(self, tokens: TokenStore, session: Optional[requests.Session] = None, timeout: float = 10):
        self.tokens = tokens
        self.session = session or requests.Session()
        self.timeout = timeout

    # HTTP helpers -----------------------------------------------------

    def _send(self, method, url, token, params=None, payload=None):
        headers = {"Authorization": f"Bearer {token}"}
        try:
            return self.session.request(method, url, headers=headers, params=params, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkFailure(e) from e

    def _request(self, method, path, params=None, payload=None, player=False):
        """
        Authenticated request. On 401 the token is rotated once and the call
        retried once; a second 401 is final.
        player=True maps 403/404 to the playback-control errors.
        """
        url = path if path.startswith("http") else f"{self.BASE_URL}/{path.lstrip('/')}"
        token = self.tokens.access_token()
        r = self._send(method, url, token, params, payload)

        if r.status_code == 401:
            logger.info("%s %s got 401, refreshing token and retrying once", method, path)
            self.tokens.refresh(stale_access_token=token)
            token = self.tokens.access_token()
            r = self._send(method, url, token, params, payload)
            if r.status_code == 401:
                raise Unauthorized()

        self._raise_for_status(r, player)

        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError:
            # player endpoints sometimes answer 200 with a non-JSON body
            return None

    @staticmethod
    def _raise_for_status(r, player: bool) -> None:
        status = r.status_code
        if status < 400:
            return
        if status == 401:
            raise Unauthorized()
        if status == 403 and player:
            raise PremiumRequired()
        if status == 404:
            raise NoActiveDevice() if player else NotFound()
        if status == 429:
            retry_after = None
            try:
                retry_after = float(r.headers.get("Retry-After"))
            except (TypeError, ValueError):
                pass
            raise RateLimited(retry_after)
        raise RemoteError(f"Spotify API error {status}: {r.reason}", status=status)

    def _paginate(self, path, params=None, max_items=500) -> List[Dict[str, Any]]:
        # Spotify provides the full URL of the next page, follow it until done
        items: List[Dict[str, Any]] = []
        data = self._request("GET", path, params=params) or {}
        items.extend(data.get("items") or [])
        next_url = data.get("next")
        while next_url and len(items) < max_items:
            data = self._request("GET", next_url) or {}
            items.extend(data.get("items") or [])
            next_url = data.get("next")
        return items[:max_items]

    # Public API -----------------------------------------------------

    def list_playlists(self) -> List[Playlist]:
        # "Liked Songs" isn't a real playlist, it's listed first so saved tracks are browsable too
        items = self._paginate("me/playlists", params={"limit": 50})
        return [Playlist.liked_songs()] + [playlist_from_spotify_payload(p) for p in items if isinstance(p, dict)]

    def list_tracks(self, playlist_id: str) -> List[Track]:
        if playlist_id == LIKED_SONGS_ID:
            items = self._paginate("me/tracks", params={"limit": 50}, max_items=50)
        else:
            items = self._paginate(f"playlists/{playlist_id}/tracks", params={"limit": 100, "additional_types": "track"})
        return normalize_tracks(items)

    def search_tracks(self, query: str) -> List[Track]:
        data = self._request("GET", "search", params={"q": query, "type": "track", "limit": 50}) or {}
        return normalize_tracks((data.get("tracks") or {}).get("items") or [])

    def get_playback(self) -> PlaybackSnapshot:
        # 204 (nothing playing anywhere) comes back as None -> explicit no-playback snapshot
        return PlaybackSnapshot.from_spotify_payload(self._request("GET", "me/player"))

    def get_queue(self) -> QueueView:
        return QueueView.from_spotify_payload(self._request("GET", "me/player/queue"))

    def devices(self) -> List[Dict[str, Any]]:
        data = self._request("GET", "me/player/devices") or {}
        return [d for d in data.get("devices") or [] if isinstance(d, dict)]

    def play(self, track_uri: Optional[str] = None) -> None:
        """Start track_uri, or resume the current context when None."""
        if not self.devices():
            raise NoActiveDevice()
        payload = {"uris": [track_uri]} if track_uri else None
        self._request("PUT", "me/player/play", payload=payload, player=True)

    def pause(self) -> None:
        self._request("PUT", "me/player/pause", player=True)

    def next(self) -> None:
        self._request("POST", "me/player/next", player=True)

    def previous(self) -> None:
        self._request("POST", "me/player/previous", player=True)

    def enqueue(self, track_uri: str) -> None:
        self._request("POST", "me/player/queue", params={"uri": track_uri}, player=True)
