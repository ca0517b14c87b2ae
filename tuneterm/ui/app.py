# tuneterm/ui/app.py
"""
Textual host for the player loop.

The app owns the terminal and is the UI thread: every key goes to the
InputLoop, a 50 ms timer drains the Dispatcher, and the panes are re-rendered
from AppState whenever its version moves. No network call happens here.
"""

import logging

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.css.query import NoMatches
from textual.widgets import Static

from tuneterm.player.events import Command, CommandIssued, CommandKind
from tuneterm.player.runtime import Runtime
from tuneterm.player.state import AuthStatus, Pane
from tuneterm.ui import render

logger = logging.getLogger(__name__)

DRAIN_INTERVAL = 0.05

# keys Textual would otherwise use for focus/scrolling
_PRIORITY_KEYS = ("tab", "up", "down", "ctrl+p", "ctrl+n", "enter", "escape", "space")


class TunetermApp(App):
    """Spotify in the terminal."""

    CSS = """
    Screen {
        layers: base overlay;
    }

    #main {
        height: 1fr;
    }

    #playlists {
        width: 1fr;
        height: 100%;
        border: round $primary-background-darken-1;
        padding: 0 1;
    }

    #tracks {
        width: 2fr;
        height: 100%;
        border: round $primary-background-darken-1;
        padding: 0 1;
    }

    #right {
        width: 1fr;
        min-width: 30;
    }

    #now-playing {
        height: auto;
        border: round $accent;
        padding: 0 1;
    }

    #queue {
        height: 1fr;
        border: round $primary-background-darken-1;
        padding: 0 1;
    }

    #playlists.focused, #tracks.focused {
        border: round $accent;
    }

    #search-bar {
        height: 1;
        padding: 0 2;
    }

    #status-bar {
        dock: bottom;
        height: 1;
        background: $primary-background-darken-1;
        padding: 0 2;
    }

    #popup-layer {
        layer: overlay;
        width: 100%;
        height: 100%;
        align: center middle;
        display: none;
    }

    #popup {
        width: 60;
        height: auto;
        border: round $accent;
        background: $panel;
        padding: 1 2;
    }
    """

    TITLE = "tuneterm"
    ENABLE_COMMAND_PALETTE = False

    BINDINGS = [Binding(key, f"press('{key}')", show=False, priority=True) for key in _PRIORITY_KEYS]

    def __init__(self, runtime: Runtime):
        super().__init__()
        self.runtime = runtime
        self._rendered_version = -1
        self._exiting = False

    def compose(self) -> ComposeResult:
        with Horizontal(id="main"):
            yield Static("", id="playlists")
            yield Static("", id="tracks")
            with Vertical(id="right"):
                yield Static("", id="now-playing")
                yield Static("", id="queue")
        yield Static("", id="search-bar")
        yield Static("", id="status-bar")
        with Container(id="popup-layer"):
            yield Static("", id="popup")

    def on_mount(self) -> None:
        self.query_one("#playlists", Static).border_title = "Playlists"
        self.query_one("#now-playing", Static).border_title = "Now playing"
        self.query_one("#queue", Static).border_title = "Up next"
        self.runtime.start()
        self.set_interval(DRAIN_INTERVAL, self.sync_state)
        self.sync_state()

    # ── input ─────────────────────────────────────────────────────────

    def action_press(self, key: str) -> None:
        self.runtime.input.feed(key)
        self.sync_state()

    def on_key(self, event: events.Key) -> None:
        if self.runtime.input.feed(event.key, event.character):
            event.stop()
            event.prevent_default()
            self.sync_state()

    async def action_quit(self) -> None:
        # ctrl+q goes through the same path as 'q'
        self.runtime.dispatcher.post(CommandIssued(Command(CommandKind.QUIT)))
        self.sync_state()

    # ── loop ──────────────────────────────────────────────────────────

    def sync_state(self) -> None:
        self.runtime.dispatcher.drain()
        state = self.runtime.dispatcher.state
        if state.quit_requested:
            if not self._exiting:
                self._exiting = True
                self.runtime.shutdown()
                self.exit()
            return
        if state.version != self._rendered_version:
            self._rendered_version = state.version
            self._refresh_panes()

    def on_resize(self, event: events.Resize) -> None:
        # list windows depend on pane height
        self._rendered_version = -1

    def _refresh_panes(self) -> None:
        state = self.runtime.dispatcher.state
        try:
            playlists = self.query_one("#playlists", Static)
            tracks = self.query_one("#tracks", Static)
            now_playing = self.query_one("#now-playing", Static)
            queue = self.query_one("#queue", Static)
            search_bar = self.query_one("#search-bar", Static)
            status_bar = self.query_one("#status-bar", Static)
            popup_layer = self.query_one("#popup-layer", Container)
            popup = self.query_one("#popup", Static)
        except NoMatches:
            return

        focused = state.nav.focused_pane
        playlists.set_class(focused is Pane.PLAYLISTS, "focused")
        tracks.set_class(focused is not Pane.PLAYLISTS, "focused")

        if state.auth is AuthStatus.READY:
            playlists.update("\n".join(render.playlist_lines(state, _rows(playlists))))
            tracks.update("\n".join(render.track_lines(state, _rows(tracks))))
            tracks.border_title = "Search results" if focused is Pane.SEARCH else _tracks_title(state)
        else:
            playlists.update("")
            tracks.update("\n".join(render.auth_lines(state)))
            tracks.border_title = "Login"

        now_playing.update("\n".join(render.now_playing_lines(state.playback)))
        queue.update("\n".join(render.queue_lines(state.queue)))
        search_bar.update(render.search_bar(state))
        status_bar.update(render.status_line(state))

        body = render.popup_lines(state)
        popup.update("\n".join(body))
        popup_layer.display = bool(body)


def _rows(widget: Static) -> int:
    return max(1, widget.size.height)


def _tracks_title(state) -> str:
    playlist = state.selected_playlist()
    return playlist.name if playlist else "Tracks"
