# tests/test_auth.py
import socket
import threading
import webbrowser
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from tuneterm.core.settings import Settings
from tuneterm.spotify.auth import AuthFlow, AuthSession, RedirectListener, make_code_challenge
from tuneterm.spotify.errors import (
    AuthorizationDenied,
    AuthTimeout,
    ExchangeFailed,
    ListenerBindFailed,
    StateMismatch,
)
from tuneterm.spotify.tokens import TokenSet

TOKEN_RESPONSE = {"access_token": "acc", "refresh_token": "ref", "expires_in": 3600, "token_type": "Bearer"}


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    """Stands in for the accounts service token endpoint."""

    def __init__(self, payload=TOKEN_RESPONSE, status=200):
        self.payload = payload
        self.status = status
        self.posts = []

    def post(self, url, data=None, auth=None, timeout=None):
        self.posts.append({"url": url, "data": data, "auth": auth})
        return FakeResponse(self.payload, self.status)


class FakeBrowser:
    """
    Plays the user's browser: when asked to open the authorize URL it follows
    the redirect to the local listener (in a thread, the listener runs on ours).
    """

    def __init__(self, query=None, paths=("/callback",), tamper_state=False):
        self.query = query
        self.paths = paths
        self.tamper_state = tamper_state
        self.responses = []
        self.threads = []

    def __call__(self, url):
        qs = parse_qs(urlparse(url).query)
        redirect = urlparse(qs["redirect_uri"][0])
        state = "forged" if self.tamper_state else qs["state"][0]
        query = self.query if self.query is not None else f"code=the-code&state={state}"
        targets = [f"http://{redirect.netloc}{path}?{query}" for path in self.paths]

        def visit():
            for target in targets:
                self.responses.append(requests.get(target, timeout=5))

        t = threading.Thread(target=visit, daemon=True)
        t.start()
        self.threads.append(t)
        return True

    def join(self):
        for t in self.threads:
            t.join(5)


def free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def port_is_free(port):
    with socket.socket() as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind(("127.0.0.1", port))
        except OSError:
            return False
        return True


def make_flow(port, session=None, opener=None, timeout=5.0, presenter=None):
    settings = Settings(
        client_id="cid",
        client_secret="secret",
        redirect_uri=f"http://127.0.0.1:{port}/callback",
        token_file=None,
        auth_timeout=timeout,
    )
    shown = []
    flow = AuthFlow(
        settings,
        session=session or FakeSession(),
        opener=opener or (lambda url: True),
        presenter=presenter or (lambda url, opened: shown.append((url, opened))),
    )
    return flow, shown


def test_code_challenge_matches_rfc7636_example():
    assert make_code_challenge("dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk") == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_authorize_url_carries_pkce_and_state():
    flow, _ = make_flow(8888)
    session = AuthSession.new()
    qs = parse_qs(urlparse(flow.authorize_url(session)).query)
    assert qs["client_id"] == ["cid"]
    assert qs["response_type"] == ["code"]
    assert qs["code_challenge_method"] == ["S256"]
    assert qs["code_challenge"] == [session.code_challenge]
    assert qs["state"] == [session.state_nonce]
    assert "user-modify-playback-state" in qs["scope"][0].split(" ")


def test_successful_login_exchanges_code_and_frees_port():
    port = free_port()
    browser = FakeBrowser()
    session = FakeSession()
    flow, shown = make_flow(port, session=session, opener=browser)

    tokens = flow.authenticate()
    browser.join()

    assert isinstance(tokens, TokenSet)
    assert tokens.access_token == "acc"
    assert tokens.refresh_token == "ref"

    assert len(session.posts) == 1
    form = session.posts[0]["data"]
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "the-code"
    assert form["code_verifier"]
    assert session.posts[0]["auth"] == ("cid", "secret")

    assert browser.responses[0].status_code == 200
    assert b"Authentication successful" in browser.responses[0].content
    assert shown and shown[0][1] is True
    assert port_is_free(port)


def test_state_mismatch_never_calls_token_endpoint():
    port = free_port()
    session = FakeSession()
    browser = FakeBrowser(tamper_state=True)
    flow, _ = make_flow(port, session=session, opener=browser)

    with pytest.raises(StateMismatch):
        flow.authenticate()
    browser.join()

    assert session.posts == []
    assert b"Authorization failed" in browser.responses[0].content
    assert port_is_free(port)


def test_listener_request_timeout_stays_within_deadline():
    port = free_port()
    listener = RedirectListener("127.0.0.1", port, "/callback", expected_state="nonce")
    try:
        assert listener.request_timeout() == RedirectListener.REQUEST_TIMEOUT
        with pytest.raises(AuthTimeout):
            listener.wait(0.2)
        assert listener.request_timeout() <= 0.05
        assert listener.state_matches("nonce")
        assert not listener.state_matches("other")
        assert not listener.state_matches(None)
    finally:
        listener.server_close()


def test_denied_authorization():
    port = free_port()
    session = FakeSession()
    browser = FakeBrowser(query="error=access_denied")
    flow, _ = make_flow(port, session=session, opener=browser)

    with pytest.raises(AuthorizationDenied):
        flow.authenticate()
    browser.join()

    assert session.posts == []
    assert b"failed" in browser.responses[0].content


def test_timeout_frees_port():
    port = free_port()
    flow, shown = make_flow(port, timeout=0.3)

    with pytest.raises(AuthTimeout):
        flow.authenticate()

    assert len(shown) == 1
    assert port_is_free(port)


def test_port_in_use_is_reported():
    with socket.socket() as blocker:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]
        flow, shown = make_flow(port)

        with pytest.raises(ListenerBindFailed):
            flow.authenticate()

    assert shown == []


def test_unrelated_request_does_not_end_the_wait():
    port = free_port()
    browser = FakeBrowser(paths=("/favicon.ico", "/callback"))
    flow, _ = make_flow(port, opener=browser)

    tokens = flow.authenticate()
    browser.join()

    assert [r.status_code for r in browser.responses] == [404, 200]
    assert tokens.access_token == "acc"


def test_browser_failure_falls_back_to_showing_url():
    port = free_port()
    browser = FakeBrowser()
    shown = []

    def broken_opener(url):
        raise webbrowser.Error("no browser")

    def presenter(url, opened):
        shown.append(opened)
        # the user copies the URL by hand
        browser(url)

    flow, _ = make_flow(port, opener=broken_opener, presenter=presenter)
    tokens = flow.authenticate()
    browser.join()

    assert shown == [False]
    assert tokens.access_token == "acc"


def test_token_endpoint_error_is_exchange_failure():
    port = free_port()
    browser = FakeBrowser()
    flow, _ = make_flow(port, session=FakeSession({"error": "invalid_grant"}, status=400), opener=browser)

    with pytest.raises(ExchangeFailed):
        flow.authenticate()
    browser.join()


def test_refresh_keeps_refresh_token_when_omitted():
    flow, _ = make_flow(8888, session=FakeSession({"access_token": "acc2", "expires_in": 3600}))
    rotated = flow.refresh(TokenSet("acc", "ref", 0))
    assert rotated.access_token == "acc2"
    assert rotated.refresh_token == "ref"
    assert flow.session.posts[0]["data"] == {"grant_type": "refresh_token", "refresh_token": "ref"}


def test_refresh_without_refresh_token_fails():
    flow, _ = make_flow(8888)
    with pytest.raises(ExchangeFailed):
        flow.refresh(TokenSet("acc", None, 0))
