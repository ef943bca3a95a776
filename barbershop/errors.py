# barbershop/errors.py


class BookingError(Exception):
    code = "BOOKING_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFoundError(BookingError):
    code = "NOT_FOUND"

    def __init__(self, resource: str, field: str, value):
        super().__init__(f"{resource} not found with {field}: {value}")
        self.resource = resource
        self.field = field
        self.value = value


class BusinessRuleError(BookingError):
    """A booking rule was broken. `code` is stable and machine-readable."""

    def __init__(self, code: str, message: str):
        super().__init__(message, code=code)


class ConflictError(BookingError):
    # kept apart from BusinessRuleError so callers can offer "pick another time"
    code = "CONFLICT"
