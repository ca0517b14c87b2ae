# tuneterm/player/input.py
"""
Keyboard handling.

InputLoop turns terminal key names into Key values and posts them to the
Dispatcher; commands_for() decides what a key means in the current mode. The
translation runs on the Dispatcher's side so it always sees the state the
command will be applied to.
"""

import logging
from typing import Callable, List, Optional, Tuple

from tuneterm.player.events import Command, CommandKind, Key, KeyPressed
from tuneterm.player.state import AppState, AuthStatus, ControlsPopup, ErrorPopup, HelpPopup, Pane

logger = logging.getLogger(__name__)

# terminal key name -> Key, Ctrl+P/N double as up/down
_NAMED_KEYS = {
    "tab": Key.TAB,
    "up": Key.UP,
    "ctrl+p": Key.UP,
    "down": Key.DOWN,
    "ctrl+n": Key.DOWN,
    "enter": Key.ENTER,
    "escape": Key.ESCAPE,
    "backspace": Key.BACKSPACE,
    "ctrl+h": Key.BACKSPACE,
    "space": Key.SPACE,
}

_CHAR_KEYS = {
    "plus": "+",
    "question_mark": "?",
}


def normalize_key(name: str, character: Optional[str] = None) -> Optional[Tuple[Key, Optional[str]]]:
    """Map a key name (and the character it produced, if any) to (Key, char). None for keys we ignore."""
    if name in _NAMED_KEYS:
        key = _NAMED_KEYS[name]
        return key, (" " if key is Key.SPACE else None)
    if name in _CHAR_KEYS:
        return Key.CHAR, _CHAR_KEYS[name]
    if character and len(character) == 1 and character.isprintable():
        return Key.CHAR, character
    if len(name) == 1 and name.isprintable():
        return Key.CHAR, name
    return None


def _cmd(kind: CommandKind, text: str = "") -> List[Command]:
    return [Command(kind, text)]


def commands_for(state: AppState, key: Key, char: Optional[str] = None) -> List[Command]:
    """What a key press means given the popup / search / auth mode of `state`."""
    nav = state.nav
    popup = nav.popup

    if isinstance(popup, ErrorPopup):
        # dismiss on any key; a failed login can be retried from here
        if popup.retry_login and key is Key.ENTER:
            return _cmd(CommandKind.LOGIN)
        return _cmd(CommandKind.CLOSE_POPUP)

    if isinstance(popup, HelpPopup):
        if key is Key.ESCAPE or (key is Key.CHAR and char == "?"):
            return _cmd(CommandKind.CLOSE_POPUP)
        return []

    if isinstance(popup, ControlsPopup):
        if key is Key.UP:
            return _cmd(CommandKind.MOVE_UP)
        if key is Key.DOWN:
            return _cmd(CommandKind.MOVE_DOWN)
        if key is Key.ENTER:
            return _cmd(CommandKind.ACTIVATE)
        if key in (Key.ESCAPE, Key.SPACE):
            return _cmd(CommandKind.CLOSE_POPUP)
        return []

    if nav.search_editing:
        if key is Key.ESCAPE:
            return _cmd(CommandKind.CANCEL_SEARCH)
        if key is Key.ENTER:
            return _cmd(CommandKind.SUBMIT_SEARCH)
        if key is Key.BACKSPACE:
            return _cmd(CommandKind.BACKSPACE)
        if key in (Key.CHAR, Key.SPACE) and char:
            return _cmd(CommandKind.TYPE, char)
        return []

    if key is Key.CHAR and char == "q":
        return _cmd(CommandKind.QUIT)
    if key is Key.CHAR and char == "?":
        return _cmd(CommandKind.TOGGLE_HELP)

    if state.auth is not AuthStatus.READY:
        if key is Key.ENTER and state.auth is AuthStatus.SIGNED_OUT:
            return _cmd(CommandKind.LOGIN)
        return []

    if key is Key.TAB:
        return _cmd(CommandKind.SWITCH_PANE)
    if key is Key.UP:
        return _cmd(CommandKind.MOVE_UP)
    if key is Key.DOWN:
        return _cmd(CommandKind.MOVE_DOWN)
    if key is Key.ENTER:
        return _cmd(CommandKind.ACTIVATE)
    if key is Key.SPACE:
        return _cmd(CommandKind.OPEN_CONTROLS)
    if key is Key.ESCAPE and nav.focused_pane is Pane.SEARCH:
        return _cmd(CommandKind.CANCEL_SEARCH)
    if key is Key.CHAR and char == "+":
        return _cmd(CommandKind.ENQUEUE)
    if key is Key.CHAR and char == "s":
        return _cmd(CommandKind.OPEN_SEARCH)
    return []


class InputLoop:
    """
    Feeds key presses into the Dispatcher. Never blocks: remote work a key
    implies is started by the Dispatcher in the background.
    """

    def __init__(self, post: Callable[[object], None]):
        self._post = post

    def feed(self, name: str, character: Optional[str] = None) -> bool:
        """Returns False when the key means nothing to us."""
        normalized = normalize_key(name, character)
        if normalized is None:
            logger.debug("ignoring key %r", name)
            return False
        key, char = normalized
        self._post(KeyPressed(key, char))
        return True
