"""Chunked transfer idioms shared by the sub-protocols.

Downloads are streams of data frames terminated by an ack; each data frame
carries the offset it belongs to. Uploads are windowed: every ``width``-th
chunk waits for an ack, the others are fired without waiting.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from ..errors import ProtocolViolation
from ..session import ACK, Session
from ..util import chunk_bytes

logger = logging.getLogger("naoslink.service.transfer")

ProgressCallback = Callable[[int], None]
SendChunk = Callable[[int, int, bytes, bool], Awaitable[None]]


async def iter_until_ack(session: Session, endpoint: int, timeout: float) -> AsyncIterator[bytes]:
    """Yield data replies on *endpoint* until the device sends an ack."""
    while True:
        reply = await session.receive(endpoint, expect_ack=True, timeout=timeout)
        if reply is ACK:
            return
        yield reply


def is_acked(index: int, width: int) -> bool:
    """Return whether chunk *index* of a windowed write waits for an ack."""
    return index % max(1, width) == 0


class OffsetStream:
    """Collects offset-tagged chunks into a pre-sized buffer."""

    def __init__(self, offset: int, length: int, report: ProgressCallback | None = None) -> None:
        self.offset = offset
        self.buffer = bytearray(length)
        self.count = 0
        self._report = report

    def feed(self, offset: int, data: bytes) -> None:
        expected = self.offset + self.count
        if offset != expected:
            raise ProtocolViolation(f"chunk offset {offset} does not match expected {expected}")
        if self.count + len(data) > len(self.buffer):
            raise ProtocolViolation("chunk exceeds requested range")
        self.buffer[self.count : self.count + len(data)] = data
        self.count += len(data)
        if self._report is not None:
            self._report(self.count)

    def result(self) -> bytes:
        return bytes(self.buffer[: self.count])


async def windowed_write(
    data: bytes,
    *,
    chunk_size: int,
    width: int,
    send_chunk: SendChunk,
    report: ProgressCallback | None = None,
) -> int:
    """Send *data* in chunks; return the number of chunks sent.

    ``send_chunk(index, offset, chunk, acked)`` performs the actual write and,
    when ``acked`` is set, waits for the device to confirm it.
    """
    if chunk_size <= 0:
        raise ProtocolViolation(f"no room for payload (chunk size {chunk_size})")

    offset = 0
    chunks = chunk_bytes(data, chunk_size)
    for index, chunk in enumerate(chunks):
        await send_chunk(index, offset, chunk, is_acked(index, width))
        offset += len(chunk)
        if report is not None:
            report(offset)

    logger.debug("Wrote %d bytes in %d chunks (width %d)", offset, len(chunks), width)
    return len(chunks)


__all__ = [
    "OffsetStream",
    "ProgressCallback",
    "is_acked",
    "iter_until_ack",
    "windowed_write",
]
