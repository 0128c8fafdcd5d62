"""
Error taxonomy for board mutations.

Every failure the store, coordinator or transport can raise derives from
BoardError so callers can recover at one boundary.
"""


class BoardError(Exception):
    """Base class for board failures."""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BoardError):
    """The request references a missing project, a bad label or an invalid position."""


class ConcurrencyError(BoardError):
    """A conflicting transaction won, or the caller's view of the row is stale."""

    retryable = True


class TransportError(BoardError):
    """The authoritative call could not be delivered or confirmed."""

    retryable = True


class StorageError(BoardError):
    """Any other database failure."""


class InvariantError(BoardError):
    """A group would have been committed with gaps or duplicate positions."""
