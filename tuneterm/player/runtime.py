# tuneterm/player/runtime.py
"""
Wires the pieces together.

Usage:
  rt = Runtime(settings)
  rt.start()              # restores the cached session or kicks off a login
  ... UI calls rt.input.feed(key) and rt.dispatcher.drain() ...
  rt.shutdown()
"""

from __future__ import annotations
import logging
from typing import Optional

from tuneterm.core.settings import Settings
from tuneterm.player.actions import ActionRunner, spawn_thread
from tuneterm.player.dispatcher import Dispatcher
from tuneterm.player.events import AuthUrlShown, Command, CommandIssued, CommandKind, SessionRestored
from tuneterm.player.input import InputLoop
from tuneterm.player.polling import PollingLoop
from tuneterm.spotify.auth import AuthFlow
from tuneterm.spotify.client import SpotifyClient
from tuneterm.spotify.tokens import TokenStore

logger = logging.getLogger(__name__)


class Runtime:
    """
    auth / tokens / client can be injected (tests); by default they are built
    from settings, with the login URL routed into the UI instead of stdout.
    """

    def __init__(
        self,
        settings: Settings,
        auth: Optional[AuthFlow] = None,
        tokens: Optional[TokenStore] = None,
        client: Optional[SpotifyClient] = None,
        spawn=spawn_thread,
    ):
        self.settings = settings
        self.dispatcher = Dispatcher()
        self.auth = auth or AuthFlow(settings, presenter=self._present_url)
        self.tokens = tokens or TokenStore(settings.token_file, refresher=self.auth.refresh)
        self.client = client or SpotifyClient(self.tokens)

        self.runner = ActionRunner(self._handlers(), self.dispatcher.post, spawn=spawn)
        self.dispatcher.runner = self.runner
        self.input = InputLoop(self.dispatcher.post)
        self.poller = PollingLoop(self.client, self.dispatcher.post, interval=settings.poll_interval, gate=self.dispatcher.poll_gate)

    # -------------------------
    # public control API
    # -------------------------
    def start(self) -> None:
        if self.tokens.load():
            logger.info("restored cached session")
            self.dispatcher.post(SessionRestored())
        else:
            self.dispatcher.post(CommandIssued(Command(CommandKind.LOGIN)))
        self.poller.start()

    def logout(self) -> None:
        self.tokens.clear()

    def shutdown(self) -> None:
        # background calls are abandoned, not awaited; their threads are daemons
        self.poller.stop()
        self.runner.close()

    # -------------------------
    # action handlers (run on worker threads)
    # -------------------------
    def _handlers(self):
        client = self.client
        return {
            "login": self._login,
            "playlists": lambda arg: client.list_playlists(),
            "tracks": client.list_tracks,
            "search": client.search_tracks,
            "play": client.play,
            "pause": lambda arg: client.pause(),
            "next": lambda arg: client.next(),
            "previous": lambda arg: client.previous(),
            "enqueue": client.enqueue,
        }

    def _login(self, arg=None) -> None:
        self.tokens.set(self.auth.authenticate())
        logger.info("login complete")

    def _present_url(self, url: str, opened: bool) -> None:
        self.dispatcher.post(AuthUrlShown(url, opened))
