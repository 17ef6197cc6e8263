"""
Error taxonomy for the booking engine.

Every failure the engine reports is a BookingError subclass carrying a stable
``code`` and the HTTP status the API answers with. Routes never build these
responses by hand; the handler registered in app.py does it.
"""


class BookingError(Exception):
    code = "VALIDATION"
    status_code = 400

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        out = {"error": self.message, "code": self.code}
        out.update(self.extra)
        return out


class Unauthenticated(BookingError):
    code = "UNAUTHENTICATED"
    status_code = 401


class AccessDenied(BookingError):
    code = "ACCESS_DENIED"
    status_code = 403


class Forbidden(BookingError):
    code = "FORBIDDEN"
    status_code = 403


class NotFound(BookingError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationFailed(BookingError):
    code = "VALIDATION"
    status_code = 400


class Conflict(BookingError):
    code = "CONFLICT"
    status_code = 409


class InvalidState(BookingError):
    code = "INVALID_STATE"
    status_code = 400


class RateLimited(BookingError):
    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, message: str, retry_after: int = 1):
        super().__init__(message, retry_after=retry_after)
        self.retry_after = retry_after
