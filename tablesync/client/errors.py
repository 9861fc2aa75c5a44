"""Error taxonomy for the session client."""

from __future__ import annotations

from tablesync.backend.models import DOCUMENT_LOCKED_MESSAGE


class SyncError(Exception):
    """Base class for every error raised by the session client."""


class InputValidationError(SyncError, ValueError):
    """Input rejected locally before any network call."""


class RejectionError(SyncError):
    """A write refused by the authority; ``str(err)`` is its message verbatim."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DocumentLockedError(RejectionError):
    def __init__(self, message: str = DOCUMENT_LOCKED_MESSAGE) -> None:
        super().__init__(message)


class TransportError(SyncError):
    """Network failure or timeout while talking to the authority."""


class InitializationError(SyncError):
    """Session establishment failed or exceeded its timeout."""
