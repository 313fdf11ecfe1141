"""Frame building and parsing for the NAOS session protocol.

Frame Structure (as carried by every transport):
    [version (1 byte)] [session (2 bytes, little-endian)] [endpoint (1 byte)] [payload]

There is no length field; transports are expected to preserve message
boundaries.
"""

from __future__ import annotations

import msgspec
from construct import ConstructError

from ..errors import FramingError
from . import protocol


class Frame(msgspec.Struct, frozen=True, kw_only=True):
    """A single message exchanged over a channel.

    Attributes:
        session: The session id (0 during the handshake).
        endpoint: The target endpoint number.
        payload: The frame payload, possibly empty.
    """

    session: int
    endpoint: int
    payload: bytes = b""

    @staticmethod
    def build(session: int, endpoint: int, payload: bytes = b"") -> bytes:
        """Build a raw frame."""
        if not 0 <= session <= 0xFFFF:
            raise ValueError(f"Session id {session} outside 16-bit range")
        if not 0 <= endpoint <= 0xFF:
            raise ValueError(f"Endpoint {endpoint} outside 8-bit range")

        return protocol.FRAME_STRUCT.build(
            {
                "version": protocol.PROTOCOL_VERSION,
                "session": session,
                "endpoint": endpoint,
                "payload": bytes(payload),
            }
        )

    @staticmethod
    def parse(raw_frame_buffer: bytes | bytearray | memoryview) -> tuple[int, int, bytes]:
        """Parse a raw frame and validate its header."""
        data_bytes = bytes(raw_frame_buffer)
        if len(data_bytes) < protocol.FRAME_HEADER_SIZE:
            raise FramingError(
                f"Incomplete frame: size {len(data_bytes)} is less than minimum {protocol.FRAME_HEADER_SIZE}"
            )

        try:
            container = protocol.FRAME_STRUCT.parse(data_bytes)
        except ConstructError as e:
            raise FramingError(f"Frame parsing failed: {e}") from e

        if container.version != protocol.PROTOCOL_VERSION:
            raise FramingError(f"Invalid version. Expected {protocol.PROTOCOL_VERSION}, got {container.version}")

        return container.session, container.endpoint, container.payload

    def to_bytes(self) -> bytes:
        """Serialize the instance using :meth:`build`."""
        return self.build(self.session, self.endpoint, self.payload)

    @classmethod
    def from_bytes(cls, raw_frame_buffer: bytes | bytearray | memoryview) -> "Frame":
        """Parse *raw_frame_buffer* and create a :class:`Frame`."""
        session, endpoint, payload = cls.parse(raw_frame_buffer)
        return cls(session=session, endpoint=endpoint, payload=payload)
