"""Exception hierarchy shared by the clients and the reconciliation engine."""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for every error raised by sso_sync."""


class ConfigError(SyncError, ValueError):
    """Configuration is missing or invalid. Raised before any remote call."""


class SecretError(SyncError):
    """A secret could not be fetched or does not have the expected shape."""


class RateLimitExceeded(SyncError):
    """A throttled call was still throttled after all retries."""


class ScimError(SyncError):
    """Non-retryable failure returned by the SCIM endpoint."""

    def __init__(self, message: str, status: Optional[int] = None, detail: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.detail = detail


class DirectoryError(SyncError):
    """Non-retryable failure returned by the Google Admin Directory API."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ReconciliationError(SyncError):
    """The target is in a state the engine cannot converge from."""
