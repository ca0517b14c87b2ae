# tuneterm/spotify/tokens.py
"""
Token ownership.

TokenStore is the only holder of the current TokenSet. Other components ask it
for an access token or ask it to rotate; nobody keeps a reference to the
tokens themselves.

Notes for user:
- Tokens are persisted as plaintext JSON (mode 0600). Don't point the cache at
  a shared location.
"""

from __future__ import annotations
import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from tuneterm.spotify.errors import AuthError, ExchangeFailed, NotAuthenticated

logger = logging.getLogger(__name__)

# subtracted from the server-declared TTL
EXPIRY_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    refresh_token: Optional[str]
    expires_at: float  # epoch seconds, already includes EXPIRY_MARGIN_SECONDS

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (time.time() if now is None else now) >= self.expires_at

    def to_json(self) -> Dict[str, Any]:
        return {"access_token": self.access_token, "refresh_token": self.refresh_token, "expires_at": self.expires_at}

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "TokenSet":
        access = obj["access_token"]
        if not isinstance(access, str) or not access:
            raise ValueError("access_token missing")
        refresh = obj.get("refresh_token")
        if refresh is not None and not isinstance(refresh, str):
            raise ValueError("refresh_token must be a string")
        return cls(access_token=access, refresh_token=refresh, expires_at=float(obj["expires_at"]))

    @classmethod
    def from_token_response(
        cls,
        payload: Dict[str, Any],
        *,
        issued_at: Optional[float] = None,
        previous_refresh_token: Optional[str] = None,
    ) -> "TokenSet":
        """
        Convert an accounts-service token response.
        Refresh responses sometimes omit refresh_token (Spotify docs), keep the previous one then.
        """
        access = payload.get("access_token")
        if not access:
            raise ValueError("token response has no access_token")
        issued = time.time() if issued_at is None else issued_at
        ttl = int(payload.get("expires_in", 3600))
        return cls(
            access_token=access,
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at=issued + ttl - EXPIRY_MARGIN_SECONDS,
        )


class TokenStore:
    """
    Holds, persists and rotates the current TokenSet.

    Usage pattern:
      store = TokenStore(path, refresher=auth.refresh)
      if not store.load(): store.set(auth.authenticate())
      token = store.access_token()  # refreshes when expired
    """

    def __init__(
        self,
        path: Optional[str],
        refresher: Optional[Callable[[TokenSet], TokenSet]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.path = path
        self.refresher = refresher
        self._clock = clock
        self._tokens: Optional[TokenSet] = None
        self._lock = threading.Lock()

    # Token storage -------------------------------------
    def load(self) -> bool:
        """Load cached tokens. Missing, malformed or expired records count as absent."""
        if not self.path or not os.path.exists(self.path):
            return False
        try:
            with open(self.path, "r", encoding="utf8") as fh:
                tokens = TokenSet.from_json(json.load(fh))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("ignoring unreadable token cache %s: %s", self.path, e)
            return False
        if tokens.is_expired(self._clock()):
            logger.info("cached token expired, a new login is required")
            return False
        with self._lock:
            self._tokens = tokens
        return True

    def set(self, tokens: TokenSet) -> None:
        with self._lock:
            self._tokens = tokens
            self._save_locked()

    def clear(self) -> None:
        with self._lock:
            self._clear_locked()

    def has_tokens(self) -> bool:
        with self._lock:
            return self._tokens is not None

    # Token refresh/access ---------------------------------------------------
    def access_token(self) -> str:
        """Return a valid access token, rotating it first when it is (nearly) expired."""
        with self._lock:
            tokens = self._tokens
        if tokens is None:
            raise NotAuthenticated()
        if tokens.is_expired(self._clock()):
            logger.info("access token near expiry, refreshing")
            tokens = self.refresh(stale_access_token=tokens.access_token)
        return tokens.access_token

    def refresh(self, stale_access_token: Optional[str] = None) -> TokenSet:
        """
        Rotate the tokens once.

        Passing the access token the caller saw rejected lets concurrent callers
        share one rotation: if it no longer matches, someone already refreshed.
        On failure the store is cleared and the AuthError propagates.
        """
        with self._lock:
            current = self._tokens
            if current is None:
                raise NotAuthenticated()
            if stale_access_token is not None and current.access_token != stale_access_token:
                return current
            if self.refresher is None:
                self._clear_locked()
                raise ExchangeFailed("token refresh is not configured")
            try:
                rotated = self.refresher(current)
            except AuthError as e:
                logger.warning("token refresh failed, login required: %s", e)
                self._clear_locked()
                raise
            self._tokens = rotated
            self._save_locked()
            return rotated

    # internals --------------------------------------------------------------
    def _save_locked(self) -> None:
        if not self.path or self._tokens is None:
            return
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf8") as fh:
                json.dump(self._tokens.to_json(), fh)
        except OSError as e:
            # best effort persist, the session keeps working from memory
            logger.warning("could not write token cache %s: %s", self.path, e)

    def _clear_locked(self) -> None:
        self._tokens = None
        if self.path and os.path.exists(self.path):
            try:
                os.remove(self.path)
            except OSError as e:
                logger.warning("could not remove token cache %s: %s", self.path, e)
