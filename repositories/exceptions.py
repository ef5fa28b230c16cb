"""
repositories/exceptions.py
--------------------------
Errors raised by the data access layer.

"Not found" is not an error here: lookups return None and mutations
return False when the referenced row does not exist.
"""

from typing import Optional


class RepositoryError(Exception):
    """
    Base class for data access errors.

    Attributes:
        cause: The underlying exception, if any.
        succeeded: For bulk inserts, how many records were inserted before
            the failure (all of them rolled back). None otherwise.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None,
                 succeeded: Optional[int] = None):
        super().__init__(message)
        self.cause = cause
        self.succeeded = succeeded


class InvalidArgumentError(RepositoryError, ValueError):
    """A caller-supplied value failed validation. Raised before any storage call."""

    def __init__(self, errors: list[str] | str, succeeded: Optional[int] = None):
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors), succeeded=succeeded)


class StorageError(RepositoryError):
    """Connectivity, transaction or any other storage-layer fault."""


class StorageTimeoutError(StorageError):
    """The operation's deadline expired; its transaction was rolled back."""


class ConflictError(StorageError):
    """The operation would violate a uniqueness constraint (duplicate email)."""
