"""
Exception types for the vectormatch package.

Every error raised on purpose by the engine, store, or pipeline derives from
VectorMatchError so callers can catch the whole family in one place.
"""


class VectorMatchError(Exception):
    """Base exception for vectormatch errors."""
    pass


class ModelUnavailableError(VectorMatchError):
    """Raised when the embedding model is disabled or failed to load/run."""
    pass


class InvalidInputError(VectorMatchError, ValueError):
    """Raised when a required table, id, text, or vector is missing or malformed."""
    pass


class StorageError(VectorMatchError):
    """Raised when a storage transaction fails. The transaction is rolled back first."""
    pass


class NotFoundError(VectorMatchError):
    """A write targeted a row that does not exist."""
    pass
