"""Errors raised by the attendance core.

Each error carries the HTTP status and a short machine-readable code so the
single handler registered in ``guestlist.main`` can render it without the
routes translating errors one by one.
"""


class AttendanceError(Exception):
    """Base class for attendance failures surfaced to the caller."""
    status_code = 400
    code = "attendance_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AttendanceError):
    """Malformed or missing request fields."""
    status_code = 400
    code = "validation_error"


class NotFoundError(AttendanceError):
    """A code, attendee id or event id does not resolve."""
    status_code = 404
    code = "not_found"


class InvalidStateError(AttendanceError):
    """The requested transition is not allowed from the current status."""
    status_code = 409
    code = "invalid_state"


class ProtectedStateError(AttendanceError):
    """Attempt to manually reverse a scanner-protected check-in."""
    status_code = 409
    code = "protected_state"


class IssuanceExhaustedError(AttendanceError):
    """No free QR code was found within the allowed attempts."""
    status_code = 503
    code = "issuance_exhausted"


class CodeCollisionError(Exception):
    """The store rejected a QR code because another row already holds it.

    Internal to the issuance retry loop; never rendered to clients.
    """

    def __init__(self, code: str):
        super().__init__(f"QR code already in use: {code}")
        self.code = code
