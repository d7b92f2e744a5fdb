"""Exceptions raised by the live view library."""


class LiveError(Exception):
    """Base class for client-side live view failures."""


class InvalidEvent(LiveError):
    """A change-feed payload could not be parsed."""


class BackendError(LiveError):
    """A fetch or write against the backend failed.

    ``message`` is safe to show to a user; ``status`` is the HTTP status
    when the failure came from the REST API.
    """

    def __init__(self, message: str, *, status: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class AuthError(BackendError):
    """Sign-in failed or the session token was rejected."""
