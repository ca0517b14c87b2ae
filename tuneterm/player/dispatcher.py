# tuneterm/player/dispatcher.py
"""
Single entry point for everything that changes AppState.

Background threads (polling, actions, the auth flow) and the input loop only
post() events; drain() applies them in arrival order on the UI thread, hands
any resulting RemoteActions to the ActionRunner and never blocks on I/O.
"""

from __future__ import annotations
import logging
import queue
import threading
from typing import List, Optional

from tuneterm.player.events import (
    ActionFailed,
    ActionSucceeded,
    AuthUrlShown,
    CommandIssued,
    KeyPressed,
    PlaybackPolled,
    PollFailed,
    RemoteAction,
    SessionRestored,
)
from tuneterm.player.input import commands_for
from tuneterm.player.state import AppState, AuthStatus

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(self, state: Optional[AppState] = None, runner=None):
        self.state = state if state is not None else AppState()
        self.runner = runner
        # set while signed in; the PollingLoop waits on it
        self.poll_gate = threading.Event()
        self._events: "queue.SimpleQueue[object]" = queue.SimpleQueue()

    def post(self, event: object) -> None:
        """Thread-safe."""
        self._events.put(event)

    def drain(self) -> int:
        """Apply every queued event. Returns how many were handled."""
        handled = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            self.handle(event)
            handled += 1
        return handled

    def handle(self, event: object) -> None:
        state = self.state
        actions = self._apply(event)
        state.version += 1

        for action in actions:
            if self.runner is None:
                logger.debug("no runner, dropping %s", action.kind)
                continue
            self.runner.submit(action)
        if self.runner is not None:
            state.busy = self.runner.busy()

        if state.auth is AuthStatus.READY:
            self.poll_gate.set()
        else:
            self.poll_gate.clear()

    # -------------------------
    # internals
    # -------------------------
    def _apply(self, event: object) -> List[RemoteAction]:
        state = self.state

        if isinstance(event, KeyPressed):
            actions: List[RemoteAction] = []
            for command in commands_for(state, event.key, event.char):
                actions.extend(state.apply(command))
            return actions
        if isinstance(event, CommandIssued):
            return state.apply(event.command)
        if isinstance(event, SessionRestored):
            return state.on_session_restored()
        if isinstance(event, AuthUrlShown):
            state.on_auth_url(event.url, event.opened)
            return []
        if isinstance(event, PlaybackPolled):
            state.on_playback_polled(event.snapshot, event.queue)
            return []
        if isinstance(event, PollFailed):
            return state.on_poll_failed(event.error)
        if isinstance(event, ActionSucceeded):
            return state.on_action_succeeded(event.action, event.result)
        if isinstance(event, ActionFailed):
            return state.on_action_failed(event.action, event.error)

        logger.warning("unhandled event %r", event)
        return []
