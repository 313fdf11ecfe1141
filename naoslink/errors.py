"""Exception hierarchy for the naoslink session stack.

Control errors reported by the device on the control endpoint are mapped to
``SessionError`` subclasses by :func:`error_for_code`. Timeouts stay distinct
from protocol failures so callers can decide whether to retry.
"""

from __future__ import annotations


class NaosLinkError(Exception):
    """Base class for every error raised by naoslink."""


class FramingError(NaosLinkError):
    """A received buffer is not a valid frame."""


class ProtocolViolation(NaosLinkError):
    """A reply arrived with an unexpected endpoint, size or content."""


class SessionError(NaosLinkError):
    """The device answered with a control error code."""

    code: int = 0

    def __init__(self, message: str | None = None, *, code: int | None = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(message or f"{self.__class__.__name__} (code {self.code})")


class InvalidMessageError(SessionError):
    code = 2


class UnknownMessageError(SessionError):
    code = 3


class EndpointError(SessionError):
    code = 4


class SessionLockedError(SessionError):
    code = 5


class ExpectedAckError(SessionError):
    """Catch-all for control codes outside the known set."""


class UnexpectedAckError(NaosLinkError):
    """An acknowledgement arrived where the caller expected data."""


class PosixError(NaosLinkError):
    """Filesystem error reported in-band by the device."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SessionTimeout(NaosLinkError, TimeoutError):
    """No frame arrived before the deadline."""


class SessionClosedError(NaosLinkError):
    """The session has ended and cannot be reused."""


class ChannelClosedError(NaosLinkError):
    """The channel feeding a queue was closed."""


class NotFoundError(NaosLinkError, KeyError):
    """A named parameter or metric is not known to the service."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "not found"


class DeviceInactiveError(NaosLinkError):
    """The managed device has no open channel."""


_CONTROL_ERRORS: dict[int, type[SessionError]] = {
    InvalidMessageError.code: InvalidMessageError,
    UnknownMessageError.code: UnknownMessageError,
    EndpointError.code: EndpointError,
    SessionLockedError.code: SessionLockedError,
}


def error_for_code(code: int) -> SessionError:
    """Map a non-ack control code to its exception instance."""
    error_cls = _CONTROL_ERRORS.get(code)
    if error_cls is None:
        return ExpectedAckError(f"expected ack, got control code {code}", code=code)
    return error_cls()


__all__ = [
    "ChannelClosedError",
    "DeviceInactiveError",
    "EndpointError",
    "ExpectedAckError",
    "FramingError",
    "InvalidMessageError",
    "NaosLinkError",
    "NotFoundError",
    "PosixError",
    "ProtocolViolation",
    "SessionClosedError",
    "SessionError",
    "SessionLockedError",
    "SessionTimeout",
    "UnexpectedAckError",
    "UnknownMessageError",
    "error_for_code",
]
