"""naoslink: session protocol client for fleets of NAOS devices."""

__version__ = "0.1.0"

from .errors import (
    NaosLinkError,
    PosixError,
    ProtocolViolation,
    SessionError,
    SessionTimeout,
    UnexpectedAckError,
)
from .execute import Result, execute
from .managed import ManagedDevice
from .protocol import Frame
from .session import ACK, Session
from .transport import Channel, Device, FrameQueue

__all__ = [
    "ACK",
    "Channel",
    "Device",
    "Frame",
    "FrameQueue",
    "ManagedDevice",
    "NaosLinkError",
    "PosixError",
    "ProtocolViolation",
    "Result",
    "Session",
    "SessionError",
    "SessionTimeout",
    "UnexpectedAckError",
    "__version__",
    "execute",
]
