"""
Domain errors raised by the circulation services.

Each error carries an ``ErrorKind`` and the HTTP status the API layer reports
it with. Expected business-rule failures use these; anything else is a bug or
an infrastructure failure and propagates untouched.
"""
import enum


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    CONCURRENCY = "concurrency"


class CirculationError(Exception):
    kind: ErrorKind = ErrorKind.CONFLICT
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CirculationError, LookupError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class InvalidInputError(CirculationError, ValueError):
    kind = ErrorKind.VALIDATION
    status_code = 422


class ConflictError(CirculationError, ValueError):
    kind = ErrorKind.CONFLICT
    status_code = 409


class CopyUnavailableError(ConflictError):
    pass


class InsufficientCopiesError(ConflictError):
    pass


class CapacityExceededError(ConflictError):
    pass


class InvalidLoanStateError(ConflictError):
    pass


class DuplicateIsbnError(ConflictError):
    pass


class ContainerInUseError(ConflictError):
    pass


class ConcurrencyConflictError(CirculationError):
    kind = ErrorKind.CONCURRENCY
    status_code = 409
