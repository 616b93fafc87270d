"""
Booking failure taxonomy.

Each error carries the generic message a visitor may see; the detail used
for logs is kept in ``detail`` and never returned to the client.
"""


class BookingError(Exception):
    """Base class for booking flow failures."""

    status_code = 500
    user_message = "Something went wrong. Please try again."
    retryable = False

    def __init__(self, detail: str | None = None, *, booking_id: str | None = None):
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message
        self.booking_id = booking_id


class BookingValidationError(BookingError):
    """Malformed or disallowed input; fixable by the user."""

    status_code = 400
    user_message = "Please check the booking details and try again."

    def __init__(self, detail: str, *, booking_id: str | None = None):
        super().__init__(detail, booking_id=booking_id)
        # Validation detail is safe to show
        self.user_message = detail


class SlotConflictError(BookingError):
    """Another booking or an external meeting holds the slot."""

    status_code = 409
    user_message = "Sorry, this time slot was just taken. Please select another time."
    retryable = True


class BookingUnavailableError(BookingError):
    """Calendar or configuration dependency is unreachable or not configured."""

    status_code = 503
    user_message = "Booking is temporarily unavailable. Please try again shortly."
    retryable = True


class BookingUnauthorizedError(BookingError):
    """The caller's session does not prove ownership of the booking."""

    status_code = 403
    user_message = "You are not allowed to manage this booking."


class BookingNotFoundError(BookingError):
    status_code = 404
    user_message = "Booking not found."


class BookingInternalError(BookingError):
    """Persistence failed after external side effects; needs operator reconciliation."""

    status_code = 500
    user_message = "We could not complete your booking. Please try again shortly."
