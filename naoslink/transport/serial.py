"""Serial transport.

Frames travel as text lines so they can share the port with console output:
``"\\nNAOS!" + base64(frame) + "\\n"``. Lines without the marker are ignored.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from pathlib import PurePath
from typing import cast

import serial_asyncio_fast  # type: ignore

from ..config.settings import LinkConfig
from ..const import DEFAULT_SERIAL_BAUD
from ..errors import NaosLinkError
from ..util import log_hexdump
from .base import BaseChannel, Channel, Device

logger = logging.getLogger("naoslink.transport.serial")

LINE_DELIMITER = b"\n"
LINE_MARKER = b"NAOS!"
MAX_SERIAL_LINE_BYTES = 8192
SERIAL_WIDTH = 1


def encode_line(frame: bytes) -> bytes:
    """Wrap a frame for the serial link."""
    return LINE_DELIMITER + LINE_MARKER + base64.b64encode(frame) + LINE_DELIMITER


def decode_line(line: bytes) -> bytes | None:
    """Return the frame carried by *line*, or None for other output."""
    line = line.strip()
    if not line.startswith(LINE_MARKER):
        return None
    try:
        return base64.b64decode(line[len(LINE_MARKER) :], validate=True)
    except binascii.Error:
        log_hexdump(logger, logging.DEBUG, "Corrupt serial line", line)
        return None


class NaosSerialProtocol(asyncio.Protocol):
    """Splits the serial byte stream into lines and dispatches frames."""

    def __init__(self, channel: SerialChannel) -> None:
        self.channel = channel
        self.transport: asyncio.Transport | None = None
        self._buffer = bytearray()
        self._discarding = False

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = cast(asyncio.Transport, transport)
        logger.info("Serial transport established for %s", self.channel.device.id)

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            logger.warning("Serial connection lost: %s", exc)
        self.transport = None
        self.channel._close_queues()

    def data_received(self, data: bytes) -> None:
        start = 0
        while (end := data.find(LINE_DELIMITER, start)) != -1:
            if self._discarding:
                self._discarding = False
                self._buffer.clear()
            else:
                self._buffer += data[start:end]
                self._process_line(bytes(self._buffer))
                self._buffer.clear()
            start = end + 1

        if self._discarding:
            return
        self._buffer += data[start:]
        if len(self._buffer) > MAX_SERIAL_LINE_BYTES:
            logger.warning("Serial line too large (>%d), flushing.", MAX_SERIAL_LINE_BYTES)
            self._buffer.clear()
            self._discarding = True

    def _process_line(self, line: bytes) -> None:
        frame = decode_line(line)
        if frame is not None:
            self.channel.dispatch(frame)


class SerialChannel(BaseChannel):
    def __init__(self, device: SerialDevice) -> None:
        super().__init__(device)
        self.protocol: NaosSerialProtocol | None = None

    async def write(self, data: bytes) -> None:
        transport = self.protocol.transport if self.protocol is not None else None
        if transport is None or transport.is_closing():
            raise NaosLinkError("serial channel is closed")
        transport.write(encode_line(data))

    def width(self) -> int:
        return SERIAL_WIDTH

    async def close(self) -> None:
        if self.protocol is not None and self.protocol.transport is not None:
            self.protocol.transport.close()
        self._close_queues()
        cast(SerialDevice, self.device).release(self)


class SerialDevice(Device):
    """A device attached to a local serial port; one channel at a time."""

    def __init__(self, port: str, baudrate: int = DEFAULT_SERIAL_BAUD) -> None:
        self.port = port
        self.baudrate = baudrate
        self._channel: SerialChannel | None = None

    @classmethod
    def from_config(cls, config: LinkConfig) -> SerialDevice:
        return cls(config.serial_port, config.serial_baud)

    @property
    def id(self) -> str:
        return f"serial/{PurePath(self.port).name}"

    async def open(self) -> Channel:
        if self._channel is not None:
            raise NaosLinkError(f"{self.id} already has an open channel")

        channel = SerialChannel(self)
        loop = asyncio.get_running_loop()
        _, proto = await serial_asyncio_fast.create_serial_connection(
            loop, lambda: NaosSerialProtocol(channel), self.port, baudrate=self.baudrate
        )
        channel.protocol = cast(NaosSerialProtocol, proto)
        self._channel = channel
        return channel

    def release(self, channel: SerialChannel) -> None:
        if self._channel is channel:
            self._channel = None


__all__ = [
    "NaosSerialProtocol",
    "SerialChannel",
    "SerialDevice",
    "decode_line",
    "encode_line",
]
