# tests/test_render.py
from tuneterm.player.state import AppState, AuthStatus, ControlsPopup, ErrorPopup, Pane
from tuneterm.spotify.models import PlaybackSnapshot, Playlist, QueueView, Track
from tuneterm.ui import render


def track(n, name=None):
    return Track(id=f"t{n}", uri=f"spotify:track:t{n}", name=name or f"Song {n}", artists=[{"name": "Band"}])


def test_format_time():
    assert render.format_time(0) == "0:00"
    assert render.format_time(None) == "0:00"
    assert render.format_time(-10) == "0:00"
    assert render.format_time(61_000) == "1:01"
    assert render.format_time(3_599_999) == "59:59"


def test_now_playing_variants():
    assert "Nothing playing" in render.now_playing_lines(PlaybackSnapshot.no_playback())[0]
    assert "unknown" in render.now_playing_lines(PlaybackSnapshot.unknown_state())[0]

    snap = PlaybackSnapshot(title="Song [live]", artist="Band", is_playing=True, progress_ms=61_000, duration_ms=120_000, device_name="Desk")
    lines = render.now_playing_lines(snap)
    assert "Song \\[live]" in lines[0]
    assert "1:01" in lines[2] and "2:00" in lines[2]
    assert "Desk" in lines[3]


def test_progress_bar_fill():
    bar = render.progress_bar(50, 100, width=10)
    assert bar.count("━") == 5
    assert bar.count("╌") == 5
    assert render.progress_bar(0, 0, width=4).count("╌") == 4


def test_list_window_follows_selection():
    labels = [f"item {i}" for i in range(100)]
    lines = render.list_lines(labels, selected=50, focused=True, height=10)
    assert len(lines) == 10
    assert "[reverse]item 50[/]" in lines
    assert render.list_lines([], 0, True) == ["[dim](empty)[/]"]


def test_track_lines_switch_to_search_results():
    state = AppState(auth=AuthStatus.READY, tracks=[track(1)], search_results=[track(2, "Found")])
    assert "Song 1" in render.track_lines(state)[0]
    state.nav.focused_pane = Pane.SEARCH
    assert "Found" in render.track_lines(state)[0]


def test_playlist_lines():
    state = AppState(auth=AuthStatus.READY, playlists=[Playlist.liked_songs(), Playlist("p1", "Mix")])
    lines = render.playlist_lines(state)
    assert lines[0] == "[reverse]Liked Songs[/]"
    assert lines[1] == "Mix"


def test_queue_shows_first_ten():
    queue = QueueView(tuple(track(i) for i in range(15)))
    lines = render.queue_lines(queue)
    assert len(lines) == 11
    assert lines[0].startswith("1. Song 0")
    assert "5 more" in lines[-1]
    assert "empty" in render.queue_lines(QueueView())[0]


def test_controls_popup_marks_selection():
    state = AppState()
    state.nav.popup = ControlsPopup(selected=2)
    lines = render.popup_lines(state)
    assert "[reverse] Next [/]" in lines
    assert " Close " in lines


def test_error_popup_escapes_message():
    state = AppState()
    state.nav.popup = ErrorPopup("bad [thing]")
    assert "bad \\[thing]" in render.popup_lines(state)


def test_no_popup_renders_nothing():
    assert render.popup_lines(AppState()) == []


def test_auth_lines_show_url_while_waiting():
    state = AppState(auth=AuthStatus.AUTHENTICATING, auth_url="https://accounts.spotify.com/authorize?x=1")
    assert state.auth_url in render.auth_lines(state)
    assert render.auth_lines(AppState(auth=AuthStatus.READY)) == []


def test_search_bar_and_status():
    state = AppState(auth=AuthStatus.READY)
    state.nav.search_editing = True
    state.nav.search_query = "lofi"
    assert "lofi" in render.search_bar(state)

    state.status = "Added to queue"
    state.busy = frozenset({"search"})
    line = render.status_line(state)
    assert "Added to queue" in line and "search" in line
