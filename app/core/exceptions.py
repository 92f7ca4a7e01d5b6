from fastapi import HTTPException, status


class AppointmentError(HTTPException):
    """Business-rule violation raised by the scheduling services.

    Each subclass pins an HTTP status and a machine-readable ``error_code``;
    the handler in ``app.main`` renders both with the human message.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "internal"
    default_detail = "An unexpected error occurred"

    def __init__(self, detail: str = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
        )


class ValidationFailed(AppointmentError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "validation"
    default_detail = "Invalid input"


class UnauthorizedError(AppointmentError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "unauthorized"
    default_detail = "Unauthorized"


class NotOwnerError(AppointmentError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "not_owner"
    default_detail = "Leave is not associated with this doctor"


class NotFoundError(AppointmentError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"
    default_detail = "Resource not found"


class SlotTakenError(AppointmentError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "slot_taken"
    default_detail = "This time slot is no longer available"


class ConflictError(AppointmentError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"
    default_detail = "The change conflicts with existing appointments"


class InvalidTransitionError(AppointmentError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_transition"
    default_detail = "Invalid status transition"


class AlreadyTerminalError(AppointmentError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "already_terminal"
    default_detail = "Appointment is already closed"


class FutureAppointmentError(AppointmentError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "future_appointment"
    default_detail = "Cannot mark future appointments as no-show"


class PastTimeError(AppointmentError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "past_time"
    default_detail = "The appointment time must be in the future"
