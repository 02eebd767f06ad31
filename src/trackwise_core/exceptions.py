"""
Typed failures raised by the work item core.

Each error carries a stable ``error`` kind and the HTTP status the API layer
answers with. None of them is fatal to the process; each is scoped to the
single operation that raised it.
"""


class TrackwiseError(Exception):
    """Base exception for all Trackwise Core failures."""

    error = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TrackwiseError):
    """Raised when a required field is missing or malformed."""

    error = "validation_error"
    status_code = 400


class NotFoundError(TrackwiseError):
    """Raised when a referenced entity does not exist."""

    error = "not_found"
    status_code = 404

    def __init__(self, entity: str, identifier):
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class DuplicateIdentifierError(TrackwiseError):
    """Raised when an explicit identifier or unique key is already taken."""

    error = "duplicate_identifier"
    status_code = 409


class InvalidHierarchyError(TrackwiseError):
    """Raised on a disallowed parent/child type pairing or a cross-project parent."""

    error = "invalid_hierarchy"
    status_code = 400


class CycleDetectedError(TrackwiseError):
    """Raised when a re-parent would make a work item its own ancestor."""

    error = "cycle_detected"
    status_code = 409

    def __init__(self, message: str, path: list[int]):
        super().__init__(message)
        self.path = path


class ConcurrencyConflictError(TrackwiseError):
    """Raised on a serialization failure; the caller may safely retry."""

    error = "concurrency_conflict"
    status_code = 409
    retryable = True
