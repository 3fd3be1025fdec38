class TrackerError(Exception):
    """Base exception for delivery tracker failures."""


class ValidationError(TrackerError):
    """Raised when required input is missing or malformed."""


class ConflictError(TrackerError):
    """Raised on a uniqueness violation, e.g. a duplicate username."""


class NotFoundError(TrackerError):
    """Raised when a referenced entity does not exist."""


class PersistenceError(TrackerError):
    """Raised when the underlying storage fails to read or write."""


class PerRecordImportError(TrackerError):
    """Raised for a single malformed or constraint-violating import record."""

    def __init__(self, kind: str, key, cause: Exception):
        self.kind = kind
        self.key = key
        self.cause = cause
        super().__init__(f"Skipping {kind} record {key!r}: {cause}")
