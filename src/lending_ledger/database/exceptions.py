"""Exceptions raised by the Lending Ledger stores."""


class RepositoryException(Exception):
    """Base exception for repository operations."""


class StorageError(RepositoryException):
    """The underlying storage operation failed (timeout, connection loss, constraint)."""


class ConcurrentModificationError(StorageError):
    """A compare-and-swap write found the row changed since it was read."""


class NotFoundError(RepositoryException):
    """Raised when an entity is not found."""


class DuplicateError(RepositoryException):
    """Raised when attempting to create a duplicate entity."""


class InvariantViolationError(RepositoryException):
    """The requested change would break a catalog or ledger invariant."""
