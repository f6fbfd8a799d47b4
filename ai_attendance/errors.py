"""Exception types raised by the attendance services.

Only local validation, access denial and transport failures are errors.
A detector that finds no face is a normal outcome, not an exception.
"""


class AttendanceError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(AttendanceError):
    """Rejected locally, before any network call."""


class PipelineBusyError(ValidationError):
    """A submission is already running for this capture surface."""


class AccessDeniedError(AttendanceError, PermissionError):
    """The camera or the identity provider refused access."""


class CameraAccessError(AccessDeniedError):
    pass


class AuthError(AttendanceError):
    """Identity provider failure, carrying its code and a user-facing message."""

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.code = code
        self.message = message


class TransportError(AttendanceError):
    """A network call failed or ran past its deadline."""


class StorageError(TransportError):
    pass


class RecordError(TransportError):
    pass
