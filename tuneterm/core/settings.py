# tuneterm/core/settings.py
"""
Runtime settings.

Client credentials only ever come from the environment. Everything else has a
default that can be overridden by env vars or CLI flags (see ui/cli.py).
"""

from __future__ import annotations
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional
from urllib.parse import urlparse

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"
DEFAULT_TOKEN_FILE = os.path.expanduser("~/.tuneterm_tokens.json")
DEFAULT_LOG_FILE = os.path.expanduser("~/.tuneterm.log")

DEFAULT_SCOPES = (
    "user-read-private",
    "playlist-read-private",
    "playlist-read-collaborative",
    "user-modify-playback-state",
    "user-read-playback-state",
    "user-read-currently-playing",
    "user-library-read",
)


class ConfigError(Exception):
    """Bad or missing configuration. Fatal at startup."""


class MissingCredential(ConfigError):
    def __init__(self, name: str):
        super().__init__(
            f"{name} environment variable not set. "
            "Set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET from your Spotify app dashboard."
        )
        self.name = name


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    token_file: Optional[str] = DEFAULT_TOKEN_FILE  # None disables the cache
    log_file: str = DEFAULT_LOG_FILE
    poll_interval: float = 1.0
    auth_timeout: float = 120.0
    open_browser: bool = True
    scopes: tuple = DEFAULT_SCOPES

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env

        client_id = (env.get("SPOTIFY_CLIENT_ID") or "").strip()
        if not client_id:
            raise MissingCredential("SPOTIFY_CLIENT_ID")
        client_secret = (env.get("SPOTIFY_CLIENT_SECRET") or "").strip()
        if not client_secret:
            raise MissingCredential("SPOTIFY_CLIENT_SECRET")

        token_file: Optional[str] = env.get("TUNETERM_TOKEN_FILE", DEFAULT_TOKEN_FILE)
        if token_file is not None:
            token_file = os.path.expanduser(token_file.strip()) or None

        settings = cls(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=(env.get("SPOTIFY_REDIRECT_URI") or DEFAULT_REDIRECT_URI).strip(),
            token_file=token_file,
            log_file=os.path.expanduser(env.get("TUNETERM_LOG_FILE") or DEFAULT_LOG_FILE),
            poll_interval=_float(env, "TUNETERM_POLL_INTERVAL", 1.0),
            auth_timeout=_float(env, "TUNETERM_AUTH_TIMEOUT", 120.0),
        )
        settings.redirect_address()  # validate early
        return settings

    def with_overrides(self, **changes) -> "Settings":
        """Apply CLI overrides, ignoring the ones left unset (None)."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes)

    def redirect_address(self):
        """(host, port, path) the local listener must bind/serve for the redirect URI."""
        parsed = urlparse(self.redirect_uri)
        if parsed.scheme != "http" or not parsed.hostname:
            raise ConfigError(f"redirect URI must be a local http:// URL, got {self.redirect_uri!r}")
        try:
            port = parsed.port or 80
        except ValueError as e:
            raise ConfigError(f"redirect URI has an invalid port: {self.redirect_uri!r}") from e
        return parsed.hostname, port, parsed.path or "/"
