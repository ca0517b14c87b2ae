# tests/test_polling.py
import threading

from tuneterm.player.events import PlaybackPolled, PollFailed
from tuneterm.player.polling import PollingLoop
from tuneterm.spotify.errors import NetworkFailure
from tuneterm.spotify.models import PlaybackSnapshot, QueueView, Track

PLAYING = PlaybackSnapshot(title="Song", is_playing=True, progress_ms=5, duration_ms=100)
QUEUE = QueueView((Track(id="t2", uri="spotify:track:t2", name="Next", artists=[]),))


class FakeClient:
    def __init__(self, snapshots):
        self.snapshots = list(snapshots)
        self.queue_calls = 0

    def get_playback(self):
        item = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
        if isinstance(item, Exception):
            raise item
        return item

    def get_queue(self):
        self.queue_calls += 1
        return QUEUE


def test_poll_once_posts_snapshot_and_queue():
    posted = []
    PollingLoop(FakeClient([PLAYING]), posted.append).poll_once()
    assert posted == [PlaybackPolled(PLAYING, QUEUE)]


def test_no_playback_skips_queue_fetch():
    posted = []
    client = FakeClient([PlaybackSnapshot.no_playback(fetched_at=1.0)])
    PollingLoop(client, posted.append).poll_once()
    assert client.queue_calls == 0
    assert posted[0].queue.tracks == ()


def test_failure_is_posted_not_raised():
    posted = []
    loop = PollingLoop(FakeClient([NetworkFailure(OSError("down")), PLAYING]), posted.append)
    loop.poll_once()
    loop.poll_once()
    assert isinstance(posted[0], PollFailed)
    assert isinstance(posted[1], PlaybackPolled)


def test_thread_polls_only_while_gate_is_open():
    polled = threading.Event()
    posted = []

    def post(event):
        posted.append(event)
        polled.set()

    gate = threading.Event()
    loop = PollingLoop(FakeClient([PLAYING]), post, interval=0.01, gate=gate)
    loop.start()
    try:
        assert not polled.wait(0.1)
        gate.set()
        assert polled.wait(2)
    finally:
        loop.stop()
    assert isinstance(posted[0], PlaybackPolled)
