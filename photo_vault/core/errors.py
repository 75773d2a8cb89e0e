"""Error taxonomy shared by every photo_vault component.

Callers can branch on the concrete class or on ``retryable``: only storage
failures may succeed when the same upload is attempted again unchanged.
"""

from __future__ import annotations


class PhotoVaultError(Exception):
    """Base class for all errors raised by the vault core."""

    retryable = False


class ValidationError(PhotoVaultError):
    """The upload was rejected before any side effect took place."""


class DuplicateError(PhotoVaultError):
    """Content with the same fingerprint is already catalogued."""

    def __init__(self, existing_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Duplicate of photo {existing_id}")
        self.existing_id = existing_id


class ProcessingError(PhotoVaultError):
    """An image could not be decoded or re-encoded."""


class StorageError(PhotoVaultError):
    """Blob storage failed (disk full, permissions, I/O)."""

    retryable = True


class NotFoundError(PhotoVaultError):
    """A photo id, blob key or fingerprint does not exist."""


__all__ = [
    "DuplicateError",
    "NotFoundError",
    "PhotoVaultError",
    "ProcessingError",
    "StorageError",
    "ValidationError",
]
