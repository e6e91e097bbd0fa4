"""
Almanac exception hierarchy.

All almanac exceptions inherit from AlmanacError, making it easy for consumers
to catch library-level errors while still distinguishing specific failure modes.
"""


class AlmanacError(Exception):
    """Base exception class for all almanac errors."""


class ConfigurationError(AlmanacError):
    """Raised for configuration errors (missing keys, invalid values)."""


class AlreadyProcessed(AlmanacError):
    """Raised inside the coverage transaction when an entry was already applied.

    This is the expected idempotency short-circuit, not a failure.
    """

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Entry {entry_id} already processed")


class InvalidCadence(AlmanacError, ValueError):
    """Raised when a period cadence is not weekly, monthly, quarterly or annual."""

    def __init__(self, cadence: object):
        self.cadence = cadence
        super().__init__(f"Unknown cadence: {cadence!r}")


class StoreError(AlmanacError):
    """Base exception for aggregate store errors."""


class StoreUnavailable(StoreError):
    """Raised when the backing store cannot be reached or written."""


class TransactionConflict(StoreError):
    """Raised when a transaction keeps conflicting after all retry attempts."""


class DocumentNotFound(StoreError, KeyError):
    """Raised when a document or nested field doesn't exist."""


class InvalidPath(StoreError):
    """Raised for malformed or unsafe document paths."""


class UpstreamReadFailure(AlmanacError):
    """Raised when source entries cannot be read during reconciliation."""
