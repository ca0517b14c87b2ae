# tuneterm/player/actions.py
"""
Background execution of remote actions.

Each action runs off the UI thread and reports back by posting ActionSucceeded
/ ActionFailed to the Dispatcher. At most one action per class is in flight;
a request arriving while its class is busy replaces any pending one (latest
intent wins) and starts once the in-flight call has reported.
"""

from __future__ import annotations
import logging
import threading
from typing import Any, Callable, Dict, FrozenSet, Optional

from tuneterm.player.events import ActionFailed, ActionSucceeded, RemoteAction
from tuneterm.spotify.errors import AuthError, RemoteError

logger = logging.getLogger(__name__)

Handler = Callable[[Optional[str]], Any]


def spawn_thread(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, name="tuneterm-action", daemon=True).start()


class ActionRunner:
    """
    handlers: action kind -> callable(arg) doing the blocking call
    post: Dispatcher.post
    spawn: how to run a job; threads by default, tests pass something synchronous
    """

    def __init__(self, handlers: Dict[str, Handler], post: Callable[[object], None], spawn: Callable[[Callable[[], None]], None] = spawn_thread):
        self.handlers = handlers
        self._post = post
        self._spawn = spawn
        self._lock = threading.Lock()
        self._in_flight: Dict[str, RemoteAction] = {}
        self._pending: Dict[str, RemoteAction] = {}
        self._closed = False

    # -------------------------
    # public control API
    # -------------------------
    def submit(self, action: RemoteAction) -> None:
        cls = action.action_class
        with self._lock:
            if self._closed:
                return
            if cls in self._in_flight:
                replaced = self._pending.get(cls)
                self._pending[cls] = action
                logger.debug("%s busy, %s waits%s", cls, action.kind, f" (replacing {replaced.kind})" if replaced else "")
                return
            self._in_flight[cls] = action
        self._spawn(lambda: self._run(action))

    def busy(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._in_flight)

    def close(self) -> None:
        """Stop accepting work. In-flight calls are abandoned, their results dropped."""
        with self._lock:
            self._closed = True
            self._pending.clear()

    # -------------------------
    # internals
    # -------------------------
    def _run(self, action: RemoteAction) -> None:
        try:
            result = self.handlers[action.kind](action.arg)
        except (RemoteError, AuthError) as e:
            logger.info("%s failed: %s", action.kind, e)
            event = ActionFailed(action, e)
        except Exception as e:
            logger.exception("unexpected error running %s", action.kind)
            event = ActionFailed(action, e)
        else:
            event = ActionSucceeded(action, result)

        with self._lock:
            closed = self._closed
        if not closed:
            self._post(event)
        self._finish(action.action_class)

    def _finish(self, cls: str) -> None:
        with self._lock:
            self._in_flight.pop(cls, None)
            nxt = None if self._closed else self._pending.pop(cls, None)
            if nxt is not None:
                self._in_flight[cls] = nxt
        if nxt is not None:
            self._spawn(lambda: self._run(nxt))
