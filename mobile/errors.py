"""Exception types raised by the tracking and sync engine."""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for remote sync failures."""

    retryable = False


class Unauthenticated(SyncError):
    """Token missing, expired or rejected. The user has to sign in again."""


class NetworkError(SyncError):
    """Transport failure or timeout. Safe to retry on the next cycle."""

    retryable = True


class ServerRejected(SyncError):
    """The server answered with a non-2xx status."""

    def __init__(self, code: int, body: str = "", message: Optional[str] = None) -> None:
        self.code = code
        self.body = body
        super().__init__(message or f"API call failed with status {code}: {body}".rstrip(": "))


class MalformedResponse(ServerRejected):
    """The server answered 2xx but the body could not be parsed."""


class AuthError(Exception):
    """Raised by identity providers when no valid session is available."""


class CacheCorrupt(Exception):
    """Persisted cache blob could not be decoded. Never leaves the cache."""


class NoFixAvailable(Exception):
    """No location fix has been observed yet."""


class InvalidIntervalError(ValueError):
    """Tracking interval outside the accepted bounds."""
