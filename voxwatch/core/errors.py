"""Error taxonomy and client-facing messages.

Operational errors are anticipated failures with an intended status code and
a message that is safe to show to the caller. Anything else reaching the
HTTP boundary is treated as an unexpected fault.
"""

from __future__ import annotations

GENERIC_ERROR_MESSAGE = "An internal error occurred. Please try again later."
RATE_LIMIT_MESSAGE = "Too many requests. Please try again later."

DEFAULT_STATUS = 500


class VoxwatchError(Exception):
    """Base exception for voxwatch errors."""

    pass


class OperationalError(VoxwatchError):
    """Expected failure whose message can be returned to the client."""

    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailedError(OperationalError):
    """Raised when request input is rejected."""

    status_code = 400


class UnauthorizedError(OperationalError):
    """Raised when a caller lacks permission for an operation."""

    status_code = 401


class ForbiddenError(OperationalError):
    """Raised when an authenticated caller is not allowed to act."""

    status_code = 403


class NotFoundError(OperationalError):
    """Raised when a requested resource does not exist."""

    status_code = 404


class FaultForwardError(VoxwatchError):
    """Raised when an exception cannot be delivered to the tracking backend."""

    pass


def _as_status(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if 400 <= value <= 599:
        return value
    return None


def status_from_error(error: BaseException) -> int:
    """Derive an HTTP status from an error.

    A custom ``status_code`` attribute wins over a generic ``status``
    attribute. Missing or unusable values give 500.
    """
    for attr in ("status_code", "status"):
        status = _as_status(getattr(error, attr, None))
        if status is not None:
            return status
    return DEFAULT_STATUS


def client_message(error: BaseException, status: int) -> str:
    """Message to expose for an error rendered with ``status``."""
    if status >= 500:
        return GENERIC_ERROR_MESSAGE
    # HTTPException keeps its text in ``detail``
    for attr in ("message", "detail"):
        message = getattr(error, attr, None)
        if isinstance(message, str) and message:
            return message
    return str(error)
