"""Exception taxonomy shared by every sync component.

Each class carries a ``kind`` string that is copied into run results so
callers can tell failures apart without importing these classes.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for sync engine errors."""

    kind = "sync"


class ValidationError(SyncError):
    """Raised for a malformed request, such as an unknown project."""

    kind = "validation"


class StorageError(SyncError):
    """Raised when local persistence (ledger or inbox files) fails."""

    kind = "storage"


class CorruptItemError(StorageError):
    """Raised when a single inbox item file cannot be parsed."""

    kind = "corrupt"


class RemoteError(SyncError):
    """Terminal remote workspace failure (bad request, not found, ...)."""

    kind = "remote"

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class AuthError(RemoteError):
    """Raised when the workspace token is invalid or revoked."""

    kind = "auth"


class TransientRemoteError(RemoteError):
    """Rate limits, 5xx responses and timeouts. Retried with backoff."""

    kind = "transient"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        self.retry_after = retry_after
        self.attempts = 0
        super().__init__(message, status)


class ClassificationError(SyncError):
    """Raised by an AI provider. Always recovered by the classifier."""

    kind = "classification"
