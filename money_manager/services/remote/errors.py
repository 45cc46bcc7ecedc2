"""
Remote Store Failures

Every failed call is classified into exactly one RemoteFailure subclass.
Only NetworkUnavailable makes the local store authoritative; the other kinds
mean the server was reachable and must be surfaced to the caller.
"""

from typing import Optional


class RemoteFailure(Exception):
    """Base exception for remote store calls."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.message = message
        self.path = path
        super().__init__(message)


class NetworkUnavailable(RemoteFailure):
    """No response reached us: connection refused, timeout, DNS failure."""
    pass


class Unauthorized(RemoteFailure):
    """HTTP 401: the token is invalid or expired. The session is torn down."""
    pass


class Rejected(RemoteFailure):
    """Any other HTTP error status. Carries the server message when present."""

    def __init__(self, status_code: int, message: str, path: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message, path)


class InvalidServerResponse(Exception):
    """The server answered, but with a body we cannot interpret."""
    pass
