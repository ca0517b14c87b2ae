# tuneterm/player/polling.py
"""
Periodic now-playing refresh.

Runs in its own thread and only ever posts PlaybackPolled / PollFailed. Poll
failures are expected (device asleep, flaky network): they are logged, the
state machine swaps in the "unknown" snapshot, nothing pops up.
"""

from __future__ import annotations
import logging
import threading
from typing import Callable, Optional

from tuneterm.player.events import PlaybackPolled, PollFailed
from tuneterm.spotify.errors import AuthError, RemoteError
from tuneterm.spotify.models import QueueView

logger = logging.getLogger(__name__)


class PollingLoop:
    """
    client: anything with get_playback() / get_queue()
    gate: polling is skipped while this is clear (not signed in)
    """

    def __init__(self, client, post: Callable[[object], None], interval: float = 1.0, gate: Optional[threading.Event] = None):
        self.client = client
        self._post = post
        self.interval = interval
        self.gate = gate if gate is not None else threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_failure: Optional[str] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="tuneterm-poll", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def poll_once(self) -> None:
        try:
            snapshot = self.client.get_playback()
            queue = self.client.get_queue() if snapshot.active else QueueView()
        except (RemoteError, AuthError) as e:
            self._log_failure(e)
            self._post(PollFailed(e))
            return
        except Exception as e:
            logger.exception("unexpected polling error")
            self._post(PollFailed(e))
            return

        if self._last_failure is not None:
            logger.info("polling recovered")
            self._last_failure = None
        self._post(PlaybackPolled(snapshot, queue))

    # -------------------------
    # internals
    # -------------------------
    def _run(self) -> None:
        while not self._stop.is_set():
            if self.gate.is_set():
                self.poll_once()
            self._stop.wait(self.interval)

    def _log_failure(self, error: Exception) -> None:
        summary = f"{type(error).__name__}: {error}"
        if summary == self._last_failure:
            logger.debug("poll failed again: %s", summary)
        else:
            logger.warning("poll failed: %s", summary)
        self._last_failure = summary
