"""
Errors raised by the front desk engine.

Every error is reported to the immediate caller. The HTTP layer translates
them into responses in ``views.front_desk_exception_handler``.
"""


class FrontDeskError(Exception):
    """Base class for engine errors."""

    code = "front_desk_error"
    default_message = "Front desk operation failed"

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(FrontDeskError):
    """Malformed input, rejected before any storage call."""

    code = "validation_error"
    default_message = "Invalid input"


class NotFound(FrontDeskError):
    code = "not_found"
    default_message = "Object not found"


class ConflictError(FrontDeskError):
    """The room is not available for the requested dates."""

    code = "conflict"
    default_message = "Room is not available for the selected dates"


class InvalidStateTransition(FrontDeskError):
    """The requested status change is not an edge of the state machine."""

    code = "invalid_state_transition"
    default_message = "Invalid state transition"


class StorageUnavailable(FrontDeskError):
    """The database could not be reached or answered unexpectedly. Retryable."""

    code = "storage_unavailable"
    default_message = "Storage is temporarily unavailable"
