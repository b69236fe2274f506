"""Error taxonomy shared by the schedule and appointment stores."""

from typing import ClassVar, Dict, Type


class ClinicError(Exception):
    """Base error carrying a stable kind and an HTTP status."""

    kind: ClassVar[str] = "error"
    status: ClassVar[int] = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ClinicError):
    """Malformed input or a bad time range."""

    kind = "validation_error"
    status = 400


class NotFoundError(ClinicError):
    """Unknown schedule, slot, appointment or charge."""

    kind = "not_found"
    status = 404


class ConflictError(ClinicError):
    """Overlap, a slot that is not available, or a double booking."""

    kind = "conflict"
    status = 409


class InvalidStateError(ClinicError):
    """Illegal state transition."""

    kind = "invalid_state"
    status = 409


class UnavailableError(ClinicError):
    """A remote collaborator could not be reached or timed out."""

    kind = "unavailable"
    status = 503


ERRORS_BY_KIND: Dict[str, Type[ClinicError]] = {
    error.kind: error
    for error in (
        ValidationError,
        NotFoundError,
        ConflictError,
        InvalidStateError,
        UnavailableError,
    )
}
