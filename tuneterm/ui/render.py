# tuneterm/ui/render.py
"""
Text rendering for the panes and popups.

Plain functions from AppState pieces to Rich markup strings, so the Textual
widgets stay dumb and the output can be checked without a terminal.
"""

from typing import List, Optional, Sequence

from rich.markup import escape

from tuneterm.player.state import CONTROL_ITEMS, AppState, AuthStatus, ControlsPopup, ErrorPopup, HelpPopup, Pane
from tuneterm.spotify.models import PlaybackSnapshot, QueueView, Track

QUEUE_DISPLAY_LIMIT = 10
BAR_WIDTH = 30

HELP_LINES = (
    ("Tab", "switch pane"),
    ("↑ / ↓, Ctrl+P / Ctrl+N", "move"),
    ("Enter", "open playlist / play track"),
    ("+", "add track to queue"),
    ("Space", "playback controls"),
    ("s", "search tracks"),
    ("Esc", "cancel search / close popup"),
    ("?", "this help"),
    ("q", "quit"),
)


def format_time(ms: Optional[int]) -> str:
    """Milliseconds -> m:ss."""
    if not ms or ms <= 0:
        return "0:00"
    m, s = divmod(int(ms) // 1000, 60)
    return f"{m}:{s:02d}"


def progress_bar(progress_ms: int, duration_ms: int, width: int = BAR_WIDTH) -> str:
    if duration_ms <= 0:
        return "[dim]" + "╌" * width + "[/]"
    ratio = max(0.0, min(1.0, progress_ms / duration_ms))
    filled = int(ratio * width)
    return "[bold cyan]" + "━" * filled + "[/][dim]" + "╌" * (width - filled) + "[/]"


def now_playing_lines(snapshot: PlaybackSnapshot) -> List[str]:
    if snapshot.unknown:
        return ["[dim]Playback state unknown (retrying)…[/]"]
    if not snapshot.active:
        return ["[dim]Nothing playing[/]", "[dim]Start playback on a device, then pick a track.[/]"]

    icon, color = ("▶", "green") if snapshot.is_playing else ("⏸", "yellow")
    lines = [
        f"[bold]{escape(snapshot.title or 'Untitled')}[/]",
        f"[dim]{escape(snapshot.artist or 'Unknown')}[/]",
        f"[{color}]{icon}[/] {format_time(snapshot.progress_ms)} "
        f"{progress_bar(snapshot.progress_ms, snapshot.duration_ms)} {format_time(snapshot.duration_ms)}",
    ]
    if snapshot.device_name:
        lines.append(f"[dim]on {escape(snapshot.device_name)}[/]")
    return lines


def track_label(track: Track) -> str:
    return f"{track.name} — {track.artist_names()}"


def list_lines(labels: Sequence[str], selected: int, focused: bool, height: int = 20) -> List[str]:
    """
    Window of `height` labels around the selection. The selected row is
    highlighted (reversed when the pane has focus).
    """
    if not labels:
        return ["[dim](empty)[/]"]
    height = max(1, height)
    start = max(0, min(selected - height // 2, len(labels) - height))
    out = []
    for i in range(start, min(start + height, len(labels))):
        text = escape(labels[i])
        if i == selected:
            text = f"[reverse]{text}[/]" if focused else f"[bold]{text}[/]"
        out.append(text)
    return out


def playlist_lines(state: AppState, height: int = 20) -> List[str]:
    labels = [p.name for p in state.playlists]
    return list_lines(labels, state.nav.selected_playlist_index, state.nav.focused_pane is Pane.PLAYLISTS, height)


def track_lines(state: AppState, height: int = 20) -> List[str]:
    nav = state.nav
    if nav.focused_pane is Pane.SEARCH:
        labels = [track_label(t) for t in state.search_results]
        return list_lines(labels, nav.selected_search_index, True, height)
    labels = [track_label(t) for t in state.tracks]
    return list_lines(labels, nav.selected_track_index, nav.focused_pane is Pane.TRACKS, height)


def queue_lines(queue: QueueView, limit: int = QUEUE_DISPLAY_LIMIT) -> List[str]:
    if not queue.tracks:
        return ["[dim]Queue is empty[/]"]
    lines = [f"{i}. {escape(track_label(t))}" for i, t in enumerate(queue.tracks[:limit], start=1)]
    hidden = len(queue.tracks) - limit
    if hidden > 0:
        lines.append(f"[dim]… and {hidden} more[/]")
    return lines


def search_bar(state: AppState) -> str:
    nav = state.nav
    if nav.search_editing:
        return f"[bold]Search:[/] {escape(nav.search_query)}▏"
    if nav.search_query:
        return f"[dim]Search:[/] {escape(nav.search_query)}"
    return "[dim]Press s to search[/]"


def status_line(state: AppState) -> str:
    if state.auth is AuthStatus.SIGNED_OUT:
        text = state.status or "Not signed in. Press Enter to log in."
    elif state.auth is AuthStatus.AUTHENTICATING:
        text = state.status or "Waiting for Spotify login…"
    else:
        text = state.status
    if state.busy:
        text = f"{text} [dim]({', '.join(sorted(state.busy))}…)[/]" if text else f"[dim]{', '.join(sorted(state.busy))}…[/]"
    return f"{text}    [dim]? help · q quit[/]" if text else "[dim]? help · q quit[/]"


def auth_lines(state: AppState) -> List[str]:
    """Login instructions shown in the main area until the session is ready."""
    if state.auth is AuthStatus.READY:
        return []
    if state.auth is AuthStatus.SIGNED_OUT:
        return ["[bold]Not signed in.[/]", "Press Enter to log in with Spotify."]
    lines = ["[bold]Waiting for Spotify login…[/]"]
    if state.auth_url:
        lines.append("If no browser opened, visit:")
        # no markup around the URL so terminals can detect and link it
        lines.append(escape(state.auth_url))
    return lines


def popup_lines(state: AppState) -> List[str]:
    """Body of the open popup, [] when none is open."""
    popup = state.nav.popup
    if popup is None:
        return []
    if isinstance(popup, HelpPopup):
        width = max(len(k) for k, _ in HELP_LINES)
        return ["[bold]Keys[/]", ""] + [f"[bold cyan]{escape(k.ljust(width))}[/]  {d}" for k, d in HELP_LINES]
    if isinstance(popup, ControlsPopup):
        lines = ["[bold]Playback[/]", ""]
        for i, item in enumerate(CONTROL_ITEMS):
            lines.append(f"[reverse] {item} [/]" if i == popup.selected else f" {item} ")
        return lines
    if isinstance(popup, ErrorPopup):
        return ["[bold red]Error[/]", ""] + [escape(line) for line in popup.message.splitlines()] + ["", "[dim]Press any key[/]"]
    return []
