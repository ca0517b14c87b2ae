# tuneterm/player/events.py
"""
Everything handed to the Dispatcher, plus the commands and remote actions the
state machine works with. All frozen: events cross threads.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from tuneterm.spotify.models import PlaybackSnapshot, QueueView


class Key(Enum):
    TAB = "tab"
    UP = "up"
    DOWN = "down"
    ENTER = "enter"
    ESCAPE = "escape"
    BACKSPACE = "backspace"
    SPACE = "space"
    CHAR = "char"


class CommandKind(Enum):
    SWITCH_PANE = "switch_pane"
    MOVE_UP = "move_up"
    MOVE_DOWN = "move_down"
    ACTIVATE = "activate"
    ENQUEUE = "enqueue"
    OPEN_SEARCH = "open_search"
    TYPE = "type"
    BACKSPACE = "backspace"
    SUBMIT_SEARCH = "submit_search"
    CANCEL_SEARCH = "cancel_search"
    OPEN_CONTROLS = "open_controls"
    TOGGLE_HELP = "toggle_help"
    CLOSE_POPUP = "close_popup"
    LOGIN = "login"
    QUIT = "quit"


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    text: str = ""


# action kind -> class; one request per class may be in flight
ACTION_CLASSES = {
    "play": "playback",
    "pause": "playback",
    "next": "playback",
    "previous": "playback",
    "enqueue": "enqueue",
    "search": "search",
    "tracks": "tracks",
    "playlists": "playlists",
    "login": "auth",
}


@dataclass(frozen=True)
class RemoteAction:
    kind: str
    arg: Optional[str] = None

    def __post_init__(self):
        if self.kind not in ACTION_CLASSES:
            raise ValueError(f"unknown action {self.kind!r}")

    @property
    def action_class(self) -> str:
        return ACTION_CLASSES[self.kind]


# -----------------------
# events
# -----------------------
@dataclass(frozen=True)
class KeyPressed:
    key: Key
    char: Optional[str] = None


@dataclass(frozen=True)
class CommandIssued:
    command: Command


@dataclass(frozen=True)
class SessionRestored:
    """Cached tokens were loaded at startup, no login needed."""


@dataclass(frozen=True)
class AuthUrlShown:
    url: str
    opened: bool


@dataclass(frozen=True)
class PlaybackPolled:
    snapshot: PlaybackSnapshot
    queue: QueueView


@dataclass(frozen=True)
class PollFailed:
    error: Exception


@dataclass(frozen=True)
class ActionSucceeded:
    action: RemoteAction
    result: Any = None


@dataclass(frozen=True)
class ActionFailed:
    action: RemoteAction
    error: Exception
