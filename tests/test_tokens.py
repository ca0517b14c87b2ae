# tests/test_tokens.py
import json
import os
import stat
import threading

import pytest

from tuneterm.spotify.errors import ExchangeFailed, NotAuthenticated
from tuneterm.spotify.tokens import EXPIRY_MARGIN_SECONDS, TokenSet, TokenStore

NOW = 1_700_000_000.0


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


class CountingRefresher:
    def __init__(self, fail=None):
        self.calls = 0
        self.fail = fail
        self._lock = threading.Lock()

    def __call__(self, current):
        with self._lock:
            self.calls += 1
            n = self.calls
        if self.fail:
            raise self.fail
        return TokenSet(f"access-{n}", current.refresh_token, NOW + 3600)


def fresh(access="access-0"):
    return TokenSet(access, "refresh-0", NOW + 3000)


def test_expiry_includes_margin():
    tokens = TokenSet.from_token_response({"access_token": "a", "refresh_token": "r", "expires_in": 3600}, issued_at=NOW)
    assert tokens.expires_at == NOW + 3600 - EXPIRY_MARGIN_SECONDS
    assert not tokens.is_expired(NOW)
    assert tokens.is_expired(NOW + 3600 - EXPIRY_MARGIN_SECONDS)


def test_rotation_keeps_previous_refresh_token():
    tokens = TokenSet.from_token_response({"access_token": "a2", "expires_in": 3600}, issued_at=NOW, previous_refresh_token="r1")
    assert tokens.refresh_token == "r1"


def test_token_response_without_access_token_is_rejected():
    with pytest.raises(ValueError):
        TokenSet.from_token_response({"expires_in": 3600})


def test_cache_round_trip(tmp_path):
    path = str(tmp_path / "tokens.json")
    store = TokenStore(path, clock=Clock())
    store.set(fresh())

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    again = TokenStore(path, clock=Clock())
    assert again.load() is True
    assert again.access_token() == "access-0"


@pytest.mark.parametrize("content", ["not json", "{}", json.dumps({"access_token": "", "expires_at": NOW + 10}), "[]"])
def test_malformed_cache_counts_as_absent(tmp_path, content):
    path = tmp_path / "tokens.json"
    path.write_text(content)
    store = TokenStore(str(path), clock=Clock())
    assert store.load() is False
    assert not store.has_tokens()


def test_expired_cache_counts_as_absent(tmp_path):
    path = tmp_path / "tokens.json"
    path.write_text(json.dumps({"access_token": "old", "refresh_token": "r", "expires_at": NOW - 1}))
    assert TokenStore(str(path), clock=Clock()).load() is False


def test_missing_cache_and_disabled_cache():
    assert TokenStore("/nonexistent/dir/tokens.json").load() is False
    store = TokenStore(None, clock=Clock())
    store.set(fresh())
    assert store.access_token() == "access-0"


def test_access_token_without_tokens_raises():
    with pytest.raises(NotAuthenticated):
        TokenStore(None).access_token()


def test_access_token_refreshes_when_expired():
    clock = Clock()
    refresher = CountingRefresher()
    store = TokenStore(None, refresher=refresher, clock=clock)
    store.set(fresh())

    assert store.access_token() == "access-0"
    assert refresher.calls == 0

    clock.now = NOW + 3000
    assert store.access_token() == "access-1"
    assert refresher.calls == 1


def test_concurrent_refresh_of_same_stale_token_rotates_once():
    refresher = CountingRefresher()
    store = TokenStore(None, refresher=refresher, clock=Clock())
    store.set(fresh("stale"))

    results = []
    threads = [threading.Thread(target=lambda: results.append(store.refresh(stale_access_token="stale"))) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert refresher.calls == 1
    assert {r.access_token for r in results} == {"access-1"}


def test_failed_refresh_clears_store(tmp_path):
    path = str(tmp_path / "tokens.json")
    store = TokenStore(path, refresher=CountingRefresher(fail=ExchangeFailed("revoked")), clock=Clock())
    store.set(fresh())

    with pytest.raises(ExchangeFailed):
        store.refresh()
    assert not store.has_tokens()
    assert not os.path.exists(path)


def test_clear_removes_cache(tmp_path):
    path = str(tmp_path / "tokens.json")
    store = TokenStore(path)
    store.set(fresh())
    store.clear()
    assert not os.path.exists(path)
    assert not store.has_tokens()
