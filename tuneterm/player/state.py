# tuneterm/player/state.py
"""
AppState: the single source of truth the renderer reads.

Only the Dispatcher calls the mutating methods here, always on the UI thread.
Methods that imply network work don't do it: they return RemoteActions for the
Dispatcher to hand to the ActionRunner. Playback is never changed locally, the
next poll reconciles what's displayed.

Popups are one variant (None | HelpPopup | ControlsPopup | ErrorPopup), so two
popups can't be open at once.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Union

from tuneterm.player.events import Command, RemoteAction
from tuneterm.spotify.errors import AuthError, Unauthorized
from tuneterm.spotify.models import PlaybackSnapshot, Playlist, QueueView, Track

logger = logging.getLogger(__name__)

CONTROL_ITEMS = ("Play/Pause", "Previous", "Next", "Close")

# consecutive Unauthorized polls before the user is told about it
POLL_AUTH_ESCALATION = 3


class Pane(Enum):
    PLAYLISTS = "playlists"
    TRACKS = "tracks"
    SEARCH = "search"


class AuthStatus(Enum):
    SIGNED_OUT = "signed_out"
    AUTHENTICATING = "authenticating"
    READY = "ready"


@dataclass(frozen=True)
class HelpPopup:
    pass


@dataclass(frozen=True)
class ControlsPopup:
    selected: int = 0


@dataclass(frozen=True)
class ErrorPopup:
    message: str
    retry_login: bool = False


Popup = Union[HelpPopup, ControlsPopup, ErrorPopup]


@dataclass
class UINavState:
    focused_pane: Pane = Pane.PLAYLISTS
    selected_playlist_index: int = 0
    selected_track_index: int = 0
    selected_search_index: int = 0
    popup: Optional[Popup] = None
    search_query: str = ""
    search_editing: bool = False


def _clamp(index: int, size: int) -> int:
    if size <= 0:
        return 0
    return max(0, min(index, size - 1))


@dataclass
class AppState:
    nav: UINavState = field(default_factory=UINavState)
    auth: AuthStatus = AuthStatus.SIGNED_OUT
    auth_url: Optional[str] = None
    playlists: List[Playlist] = field(default_factory=list)
    tracks: List[Track] = field(default_factory=list)
    search_results: List[Track] = field(default_factory=list)
    playback: PlaybackSnapshot = field(default_factory=PlaybackSnapshot.no_playback)
    queue: QueueView = field(default_factory=QueueView)
    status: str = ""
    busy: FrozenSet[str] = frozenset()
    consecutive_poll_auth_failures: int = 0
    poll_auth_escalated: bool = False
    quit_requested: bool = False
    version: int = 0

    # ----------------------
    # read helpers
    # ----------------------
    def selected_playlist(self) -> Optional[Playlist]:
        if 0 <= self.nav.selected_playlist_index < len(self.playlists):
            return self.playlists[self.nav.selected_playlist_index]
        return None

    def selected_track(self) -> Optional[Track]:
        """Track under the cursor in the focused list (tracks or search results)."""
        nav = self.nav
        if nav.focused_pane is Pane.TRACKS and 0 <= nav.selected_track_index < len(self.tracks):
            return self.tracks[nav.selected_track_index]
        if nav.focused_pane is Pane.SEARCH and 0 <= nav.selected_search_index < len(self.search_results):
            return self.search_results[nav.selected_search_index]
        return None

    # ----------------------
    # commands
    # ----------------------
    def apply(self, command: Command) -> List[RemoteAction]:
        handler = getattr(self, "_cmd_" + command.kind.value)
        return handler(command) or []

    def _cmd_switch_pane(self, command):
        nav = self.nav
        order = [Pane.PLAYLISTS, Pane.TRACKS]
        if self.search_results or nav.search_query:
            order.append(Pane.SEARCH)
        current = order.index(nav.focused_pane) if nav.focused_pane in order else -1
        nav.focused_pane = order[(current + 1) % len(order)]

    def _cmd_move_up(self, command):
        return self._move(-1)

    def _cmd_move_down(self, command):
        return self._move(+1)

    def _move(self, delta: int) -> List[RemoteAction]:
        nav = self.nav
        if isinstance(nav.popup, ControlsPopup):
            nav.popup = ControlsPopup(_clamp(nav.popup.selected + delta, len(CONTROL_ITEMS)))
            return []

        if nav.focused_pane is Pane.PLAYLISTS:
            before = nav.selected_playlist_index
            nav.selected_playlist_index = _clamp(before + delta, len(self.playlists))
            if nav.selected_playlist_index != before:
                # browsing a playlist loads its tracks
                return self._load_selected_playlist()
        elif nav.focused_pane is Pane.TRACKS:
            nav.selected_track_index = _clamp(nav.selected_track_index + delta, len(self.tracks))
        else:
            nav.selected_search_index = _clamp(nav.selected_search_index + delta, len(self.search_results))
        return []

    def _load_selected_playlist(self) -> List[RemoteAction]:
        playlist = self.selected_playlist()
        if playlist is None or not playlist.id:
            return []
        return [RemoteAction("tracks", playlist.id)]

    def _cmd_activate(self, command):
        nav = self.nav
        if isinstance(nav.popup, ControlsPopup):
            item = CONTROL_ITEMS[nav.popup.selected]
            if item == "Play/Pause":
                return [RemoteAction("pause") if self.playback.is_playing else RemoteAction("play")]
            if item == "Previous":
                return [RemoteAction("previous")]
            if item == "Next":
                return [RemoteAction("next")]
            nav.popup = None
            return []

        if nav.focused_pane is Pane.PLAYLISTS:
            actions = self._load_selected_playlist()
            if actions:
                nav.focused_pane = Pane.TRACKS
            return actions

        track = self.selected_track()
        if track is None or not track.uri:
            return []
        self.status = f"Playing {track.name}…"
        return [RemoteAction("play", track.uri)]

    def _cmd_enqueue(self, command):
        track = self.selected_track()
        if track is None or not track.uri:
            return []
        return [RemoteAction("enqueue", track.uri)]

    def _cmd_open_search(self, command):
        nav = self.nav
        nav.focused_pane = Pane.SEARCH
        nav.search_editing = True
        nav.search_query = ""
        nav.selected_search_index = 0
        self.search_results = []

    def _cmd_type(self, command):
        self.nav.search_query += command.text

    def _cmd_backspace(self, command):
        self.nav.search_query = self.nav.search_query[:-1]

    def _cmd_submit_search(self, command):
        query = self.nav.search_query.strip()
        if not query:
            return []
        self.nav.search_editing = False
        self.status = f"Searching for {query!r}…"
        return [RemoteAction("search", query)]

    def _cmd_cancel_search(self, command):
        nav = self.nav
        nav.search_editing = False
        nav.search_query = ""
        nav.selected_search_index = 0
        nav.focused_pane = Pane.PLAYLISTS
        self.search_results = []

    def _cmd_open_controls(self, command):
        self.nav.popup = ControlsPopup()

    def _cmd_toggle_help(self, command):
        self.nav.popup = None if isinstance(self.nav.popup, HelpPopup) else HelpPopup()

    def _cmd_close_popup(self, command):
        self.nav.popup = None

    def _cmd_login(self, command):
        self.nav.popup = None
        if self.auth is AuthStatus.AUTHENTICATING:
            return []
        self.auth = AuthStatus.AUTHENTICATING
        self.auth_url = None
        self.status = "Waiting for Spotify login…"
        return [RemoteAction("login")]

    def _cmd_quit(self, command):
        self.quit_requested = True

    # ----------------------
    # background results
    # ----------------------
    def on_session_restored(self) -> List[RemoteAction]:
        self.auth = AuthStatus.READY
        self.status = "Signed in"
        return [RemoteAction("playlists")]

    def on_auth_url(self, url: str, opened: bool) -> None:
        self.auth_url = url
        if opened:
            self.status = "Complete the login in your browser…"
        else:
            self.status = "Open the login URL below in a browser…"

    def on_playback_polled(self, snapshot: PlaybackSnapshot, queue: QueueView) -> None:
        self.playback = snapshot
        self.queue = queue
        self.consecutive_poll_auth_failures = 0
        self.poll_auth_escalated = False

    def on_poll_failed(self, error: Exception) -> List[RemoteAction]:
        # never leave a stale "now playing" up
        self.playback = PlaybackSnapshot.unknown_state()
        self.queue = QueueView()

        if isinstance(error, AuthError):
            return self._session_expired(error)
        if isinstance(error, Unauthorized):
            self.consecutive_poll_auth_failures += 1
            if self.consecutive_poll_auth_failures >= POLL_AUTH_ESCALATION and not self.poll_auth_escalated:
                self.poll_auth_escalated = True
                self._show_error(f"Spotify keeps rejecting this session: {error}")
        return []

    def on_action_succeeded(self, action: RemoteAction, result) -> List[RemoteAction]:
        kind = action.kind
        nav = self.nav

        if kind == "login":
            self.auth = AuthStatus.READY
            self.auth_url = None
            self.status = "Signed in"
            return [RemoteAction("playlists")]

        if kind == "playlists":
            self.playlists = list(result or [])
            nav.selected_playlist_index = _clamp(nav.selected_playlist_index, len(self.playlists))
            self.status = f"Loaded {len(self.playlists)} playlists"
            return self._load_selected_playlist()

        if kind == "tracks":
            playlist = self.selected_playlist()
            if playlist is None or playlist.id != action.arg:
                # the cursor moved on, a newer load is coming
                return []
            self.tracks = list(result or [])
            nav.selected_track_index = 0
            self.status = f"{playlist.name}: {len(self.tracks)} tracks"
            return []

        if kind == "search":
            if nav.search_editing or nav.search_query.strip() != action.arg:
                # cancelled or superseded while in flight
                return []
            self.search_results = list(result or [])
            nav.selected_search_index = 0
            self.status = f"{len(self.search_results)} results for {action.arg!r}"
            return []

        if kind == "enqueue":
            # the queue view catches up on a later poll
            self.status = "Added to queue"
        elif kind in ("play", "pause", "next", "previous"):
            self.status = {"play": "Playing", "pause": "Paused", "next": "Skipped to next", "previous": "Back to previous"}[kind]
        return []

    def on_action_failed(self, action: RemoteAction, error: Exception) -> List[RemoteAction]:
        if action.kind == "login":
            self.auth = AuthStatus.SIGNED_OUT
            self.auth_url = None
            self.status = "Not signed in. Press Enter to log in."
            self._show_error(f"Login failed: {error}\n\nPress Enter to retry, any other key to dismiss.", retry_login=True)
            return []
        if isinstance(error, AuthError):
            return self._session_expired(error)
        self.status = ""
        self._show_error(str(error))
        return []

    # ----------------------
    # internals
    # ----------------------
    def _show_error(self, message: str, retry_login: bool = False) -> None:
        # errors pre-empt whatever popup is open
        self.nav.popup = ErrorPopup(message, retry_login=retry_login)

    def _session_expired(self, error: Exception) -> List[RemoteAction]:
        if self.auth is not AuthStatus.READY:
            # already re-authenticating
            return []
        logger.warning("session expired, starting a new login: %s", error)
        self._show_error("Your Spotify session expired. Complete the login in your browser to continue.")
        self.auth = AuthStatus.AUTHENTICATING
        self.auth_url = None
        self.status = "Waiting for Spotify login…"
        return [RemoteAction("login")]
