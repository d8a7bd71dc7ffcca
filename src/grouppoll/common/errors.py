"""Error taxonomy for group poll operations.

Core functions raise these; the API layer maps ``status_code`` onto the
HTTP response.
"""


class PollError(Exception):
    """Base class for all poll errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(PollError):
    """The requested entity does not exist."""

    status_code = 404


class Forbidden(PollError):
    """Authenticated, but not the owner of the poll."""

    status_code = 403


class BadRequest(PollError):
    """Well-formed request that violates a business rule."""

    status_code = 400


class InvalidState(BadRequest):
    """The poll's status does not allow the requested operation."""

    def __init__(self, message: str, status: str | None = None):
        self.status = status
        super().__init__(message)


class FormatError(BadRequest):
    """A date or time string does not match its canonical pattern."""


class RangeError(BadRequest):
    """A date or time string is well-formed but out of range."""


class Conflict(PollError):
    """Lost a concurrency race (another request already committed)."""

    status_code = 409
