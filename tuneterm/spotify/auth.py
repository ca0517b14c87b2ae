# tuneterm/spotify/auth.py
"""
Spotify login (Authorization Code with PKCE + state nonce).

Features:
- PKCE (S256) code challenge generation
- Binds a tiny local HTTP server on the redirect URI *before* the authorize URL
  is shown, serves until the single callback arrives or the timeout passes
- Opens the default browser, falls back to showing the URL
- Exchanges the code for tokens and refreshes tokens on demand

Notes for user:
- Make sure the redirect URI is registered in your Spotify app settings.
"""

from __future__ import annotations
import base64
import hashlib
import logging
import secrets
import time
import webbrowser
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Callable, Dict, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import requests

from tuneterm.core.settings import Settings
from tuneterm.spotify.errors import (
    AuthorizationDenied,
    AuthTimeout,
    ExchangeFailed,
    ListenerBindFailed,
    StateMismatch,
)
from tuneterm.spotify.tokens import TokenSet

logger = logging.getLogger(__name__)

# Constants (kept here to be explicit)
SPOTIFY_ACCOUNTS = "https://accounts.spotify.com"
TOKEN_URL = SPOTIFY_ACCOUNTS + "/api/token"
AUTHORIZE_URL = SPOTIFY_ACCOUNTS + "/authorize"

SUCCESS_PAGE = (
    b"<html><body><h1>Authentication successful!</h1>"
    b"<p>You can close this window and return to the terminal.</p></body></html>"
)
FAILURE_PAGE = (
    b"<html><body><h1>Authorization failed or was cancelled.</h1>"
    b"<p>You may close this window.</p></body></html>"
)


def _b64_urlsafe_no_pad(b: bytes) -> str:
    """URL-safe base64 without '=' padding (PKCE uses that)."""
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def make_code_verifier(length: int = 64) -> str:
    # per RFC-7636: 43-128 chars from [A-Z / a-z / 0-9 / "-" / "." / "_" / "~"]
    return _b64_urlsafe_no_pad(secrets.token_bytes(length))[:128]


def make_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64_urlsafe_no_pad(digest)


@dataclass
class AuthSession:
    """State of one login attempt. Discarded once the attempt ends."""
    state_nonce: str
    code_verifier: str
    code_challenge: str
    listener: Optional["RedirectListener"] = None

    @classmethod
    def new(cls) -> "AuthSession":
        verifier = make_code_verifier()
        return cls(state_nonce=secrets.token_urlsafe(16), code_verifier=verifier, code_challenge=make_code_challenge(verifier))


class _RedirectHandler(BaseHTTPRequestHandler):
    """
    Captures the 'code'/'state' (or 'error') query params of the redirect
    and stores them on the server for the caller to pick up.
    """
    server_version = "tuneterm/0.1"

    def setup(self):
        # a connected browser that never sends its request line must not hang the wait
        self.timeout = self.server.request_timeout()
        super().setup()

    def do_GET(self):
        parsed = urlparse(self.path)
        if parsed.path != self.server.callback_path:
            self.send_error(404)
            return

        qs = parse_qs(parsed.query)
        result = {k: v[0] for k, v in qs.items() if k in ("code", "state", "error") and v}
        if "code" not in result and "error" not in result:
            self.send_error(400, "Missing code")
            return

        self.server.result = result
        body = SUCCESS_PAGE if "code" in result and self.server.state_matches(result.get("state")) else FAILURE_PAGE
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug("redirect listener: " + format, *args)


class RedirectListener(HTTPServer):
    """HTTP server bound to the redirect URI that waits for exactly one callback."""

    REQUEST_TIMEOUT = 5.0

    def __init__(self, host: str, port: int, callback_path: str, expected_state: Optional[str] = None):
        super().__init__((host, port), _RedirectHandler)
        self.callback_path = callback_path
        self.expected_state = expected_state
        self.result: Optional[Dict[str, str]] = None
        self._deadline: Optional[float] = None

    def state_matches(self, state: Optional[str]) -> bool:
        if self.expected_state is None:
            return True
        return secrets.compare_digest(state or "", self.expected_state)

    def request_timeout(self) -> float:
        """Per-connection socket timeout, never running past the wait deadline."""
        if self._deadline is None:
            return self.REQUEST_TIMEOUT
        return max(0.05, min(self.REQUEST_TIMEOUT, self._deadline - time.monotonic()))

    def wait(self, timeout: float) -> Dict[str, str]:
        self._deadline = time.monotonic() + timeout
        while self.result is None:
            remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                raise AuthTimeout(timeout)
            self.timeout = remaining
            self.handle_request()
        return self.result


def print_presenter(url: str, opened: bool) -> None:
    if opened:
        print("\nA browser window was opened. If nothing happened, open this URL:\n")
    else:
        print("\nOpen this URL in your browser and authorize the app:\n")
    print(url + "\n")


class AuthFlow:
    """
    Runs the interactive login and token rotation against the accounts service.

    opener: called with the authorize URL, returns falsy (or raises webbrowser.Error) when no browser is available
    presenter: called with (url, opened) once the listener is up, so the URL can be shown for manual use
    """

    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        opener: Callable[[str], bool] = webbrowser.open,
        presenter: Callable[[str, bool], None] = print_presenter,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.opener = opener
        self.presenter = presenter

    def authorize_url(self, auth_session: AuthSession) -> str:
        params = {
            "client_id": self.settings.client_id,
            "response_type": "code",
            "redirect_uri": self.settings.redirect_uri,
            "scope": " ".join(self.settings.scopes),
            "code_challenge_method": "S256",
            "code_challenge": auth_session.code_challenge,
            "state": auth_session.state_nonce,
        }
        return AUTHORIZE_URL + "?" + urlencode(params)

    # Auth flow ------------------------------------------------
    def authenticate(self) -> TokenSet:
        """
        Interactive login:
        - binds the redirect listener
        - opens/presents the authorize URL
        - waits for the single redirect (or times out)
        - validates state and exchanges the code for tokens
        The listener is closed on every outcome.
        """
        auth_session = AuthSession.new()
        host, port, path = self.settings.redirect_address()

        try:
            listener = RedirectListener(host, port, path, expected_state=auth_session.state_nonce)
        except OSError as e:
            raise ListenerBindFailed(host, port, e) from e
        auth_session.listener = listener
        logger.info("listening for the login redirect on %s:%s%s", host, port, path)

        try:
            self._present(self.authorize_url(auth_session))
            result = listener.wait(self.settings.auth_timeout)
        finally:
            listener.server_close()
            auth_session.listener = None

        if "error" in result:
            raise AuthorizationDenied(result["error"])
        if not listener.state_matches(result.get("state")):
            logger.warning("login redirect carried an unexpected state, rejecting it")
            raise StateMismatch()

        tokens = self.exchange_code(result["code"], auth_session.code_verifier)
        logger.info("login complete")
        return tokens

    def exchange_code(self, code: str, code_verifier: str) -> TokenSet:
        payload = self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.redirect_uri,
            "code_verifier": code_verifier,
        })
        try:
            return TokenSet.from_token_response(payload)
        except ValueError as e:
            raise ExchangeFailed("token exchange returned an unusable response", e) from e

    def refresh(self, current: TokenSet) -> TokenSet:
        if not current.refresh_token:
            raise ExchangeFailed("no refresh token available, login required")
        payload = self._token_request({"grant_type": "refresh_token", "refresh_token": current.refresh_token})
        try:
            return TokenSet.from_token_response(payload, previous_refresh_token=current.refresh_token)
        except ValueError as e:
            raise ExchangeFailed("token refresh returned an unusable response", e) from e

    # internals ----------------------------------------------------------
    def _present(self, url: str) -> None:
        opened = False
        if self.settings.open_browser:
            try:
                opened = bool(self.opener(url))
            except webbrowser.Error as e:
                logger.info("could not open a browser: %s", e)
        if not opened:
            logger.info("no browser available, showing the authorize URL instead")
        self.presenter(url, opened)

    def _token_request(self, form: Dict[str, str]) -> Dict:
        auth = None
        if self.settings.client_secret:
            auth = (self.settings.client_id, self.settings.client_secret)
        else:
            form = dict(form, client_id=self.settings.client_id)
        try:
            r = self.session.post(TOKEN_URL, data=form, auth=auth, timeout=15)
            r.raise_for_status()
            return r.json()
        except requests.RequestException as e:
            raise ExchangeFailed("token request failed", e) from e
        except ValueError as e:
            raise ExchangeFailed("token endpoint returned invalid JSON", e) from e
