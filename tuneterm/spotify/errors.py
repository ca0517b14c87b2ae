# tuneterm/spotify/errors.py
"""Error taxonomy for the auth flow and the Web API client."""

from typing import Optional


# -----------------------
# auth
# -----------------------
class AuthError(Exception):
    """Login or token rotation failed. Never fatal to the process."""


class StateMismatch(AuthError):
    def __init__(self):
        super().__init__("Authorization rejected: state parameter did not match this login attempt.")


class ListenerBindFailed(AuthError):
    def __init__(self, host: str, port: int, cause: Exception):
        super().__init__(f"Could not listen on {host}:{port} for the login redirect ({cause}).")
        self.host = host
        self.port = port


class ExchangeFailed(AuthError):
    def __init__(self, message: str, upstream: Optional[Exception] = None):
        super().__init__(message if upstream is None else f"{message}: {upstream}")
        self.upstream = upstream


class AuthTimeout(AuthError):
    def __init__(self, seconds: float):
        super().__init__(f"No login redirect received within {int(seconds)}s.")
        self.seconds = seconds


class AuthorizationDenied(AuthError):
    def __init__(self, reason: str):
        super().__init__(f"Authorization was denied ({reason}).")
        self.reason = reason


class NotAuthenticated(AuthError):
    def __init__(self):
        super().__init__("Not signed in.")


# -----------------------
# remote api
# -----------------------
class RemoteError(Exception):
    """A Web API call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class Unauthorized(RemoteError):
    def __init__(self, message: str = "Spotify rejected the access token."):
        super().__init__(message, status=401)


class NotFound(RemoteError):
    def __init__(self, message: str = "Not found."):
        super().__init__(message, status=404)


class RateLimited(RemoteError):
    def __init__(self, retry_after: Optional[float] = None):
        hint = f" Retry in {int(retry_after)}s." if retry_after else ""
        super().__init__("Spotify rate limit hit." + hint, status=429)
        self.retry_after = retry_after


class NetworkFailure(RemoteError):
    def __init__(self, cause: Exception):
        super().__init__(f"Network error: {cause}")
        self.cause = cause


class NoActiveDevice(RemoteError):
    def __init__(self):
        super().__init__(
            "No active device found. Please start Spotify on your phone, computer, or web browser.",
            status=404,
        )


class PremiumRequired(RemoteError):
    def __init__(self):
        super().__init__("Spotify Premium is required for playback control.", status=403)
