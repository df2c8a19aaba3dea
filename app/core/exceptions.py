"""
Error taxonomy for booking ledger operations.

Each error maps to a single HTTP status. Conflicts carry a machine-readable
``reason`` so clients can tell a full slot from a duplicate booking.
"""
from fastapi import HTTPException, status

from .security import AuthorizationError


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class ForbiddenError(AuthorizationError):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(detail=detail)


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Invalid request"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
        )


class ConflictReason:
    ALREADY_BOOKED = "already_booked"
    SLOT_FULL = "slot_full"
    ALREADY_CANCELLED = "already_cancelled"
    STUDENT_ALREADY_BOOKED = "student_already_booked"
    SLOT_BUSY = "slot_busy"


class ConflictError(HTTPException):
    """The requested change would break a booking invariant.

    Retrying the same request will fail the same way; the caller has to
    change its input (pick another slot, another student).
    """

    def __init__(self, reason: str, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )
        self.reason = reason
