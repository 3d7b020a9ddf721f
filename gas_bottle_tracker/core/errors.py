"""
Error taxonomy for the tracker.

Validation failures are raised before any persistence happens. Remote
failures are recovered by the sync coordinator and never reach callers
of a mutation.
"""


class TrackerError(Exception):
    """Base class for all tracker errors."""


class ValidationError(TrackerError, ValueError):
    """Raised when user-supplied connection or settings fields are invalid."""


class RemoteUnavailableError(TrackerError):
    """Raised when the remote document store cannot be reached or initialized."""


class DataImportError(TrackerError):
    """Raised when an import payload is not parseable JSON."""
