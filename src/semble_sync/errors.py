"""Exception hierarchy for semble_sync.

- ``ConfigurationError`` -- a required credential or setting is missing.
  Raised before any remote call is made.
- ``AuthenticationError`` -- the remote repository rejected the login.
- ``RemoteError`` -- any other non-success response from the remote
  repository.  Carries the HTTP status code when one is available.
"""

from __future__ import annotations


class SembleSyncError(Exception):
    """Base class for all errors raised by semble_sync."""


class ConfigurationError(SembleSyncError, ValueError):
    """Configuration is incomplete or invalid."""


class AuthenticationError(SembleSyncError):
    """Login to the remote repository failed."""


class RemoteError(SembleSyncError):
    """A remote repository call returned an error response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
