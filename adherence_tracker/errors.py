"""Error types raised by the reminder core.

Messages are shown to the patient as-is, so keep them readable.
"""


class ReminderError(Exception):
    """Base class for reminder errors."""
    pass


class NotFound(ReminderError):
    """Raised when a record does not exist or belongs to another patient."""
    pass


class InvalidState(ReminderError):
    """Raised when a transition is not allowed from the reminder's current state."""
    pass


class ValidationFailure(ReminderError):
    """Raised when request input is malformed or out of bounds."""
    pass
