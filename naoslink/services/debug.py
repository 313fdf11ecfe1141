"""Crash dump retrieval and log streaming."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..const import DEFAULT_LOG_IDLE_TIMEOUT, DEFAULT_LOG_POLL_INTERVAL, DEFAULT_TIMEOUT
from ..errors import NaosLinkError, ProtocolViolation, SessionTimeout
from ..protocol.protocol import DebugCommand, Endpoint
from ..protocol.structures import ChunkPacket, CoredumpInfo, RangePacket, command
from ..session import ACK, Session
from .transfer import OffsetStream, iter_until_ack

logger = logging.getLogger("naoslink.service.debug")

_COREDUMP_INFO_MIN_SIZE = 4
_CHUNK_MIN_SIZE = 4


async def check_coredump(session: Session, timeout: float = DEFAULT_TIMEOUT) -> CoredumpInfo:
    """Return the size and reason of the stored crash dump (size 0 if none)."""
    await session.send(Endpoint.DEBUG, command(DebugCommand.CHECK))
    reply = await session.receive(Endpoint.DEBUG, timeout=timeout)
    if len(reply) < _COREDUMP_INFO_MIN_SIZE:
        raise ProtocolViolation("invalid coredump info reply")
    return CoredumpInfo.decode(reply)


async def read_coredump(session: Session, offset: int, length: int, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Read *length* bytes of the crash dump starting at *offset*."""
    await session.send(Endpoint.DEBUG, command(DebugCommand.READ, RangePacket(offset=offset, length=length)))

    stream = OffsetStream(offset, length)
    async for reply in iter_until_ack(session, Endpoint.DEBUG, timeout):
        if len(reply) < _CHUNK_MIN_SIZE:
            raise ProtocolViolation("invalid coredump chunk")
        chunk = ChunkPacket.decode(reply)
        stream.feed(chunk.offset, chunk.data)

    return stream.result()


async def delete_coredump(session: Session, timeout: float = DEFAULT_TIMEOUT) -> None:
    await session.send(Endpoint.DEBUG, command(DebugCommand.DELETE), timeout)


async def start_log(session: Session, timeout: float = DEFAULT_TIMEOUT) -> None:
    """Subscribe to log lines; a zero *timeout* does not wait for the ack."""
    await session.send(Endpoint.DEBUG, command(DebugCommand.LOG_START), timeout)


async def stop_log(session: Session, timeout: float = DEFAULT_TIMEOUT) -> None:
    await session.send(Endpoint.DEBUG, command(DebugCommand.LOG_STOP), timeout)


async def receive_log(session: Session, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Wait for the next log line."""
    data = await session.receive(Endpoint.DEBUG, timeout=timeout)
    return data.decode("utf-8", errors="replace")


async def stream_log(
    session: Session,
    stop: asyncio.Event,
    on_line: Callable[[str], None],
    *,
    timeout: float = DEFAULT_TIMEOUT,
    idle_timeout: float = DEFAULT_LOG_IDLE_TIMEOUT,
    poll_interval: float = DEFAULT_LOG_POLL_INTERVAL,
) -> int:
    """Deliver log lines to *on_line* until *stop* is set; return the line count.

    Lines and keep-alive acks both count as activity. After *idle_timeout*
    without activity the start command is sent again without waiting for its
    ack. *stop* is checked after every receive, so the loop ends within
    *poll_interval* of it being set.
    """
    loop = asyncio.get_running_loop()
    await start_log(session, timeout)
    last_activity = loop.time()
    lines = 0

    try:
        while not stop.is_set():
            try:
                reply = await session.receive(Endpoint.DEBUG, expect_ack=True, timeout=poll_interval)
            except SessionTimeout:
                if loop.time() - last_activity >= idle_timeout:
                    logger.debug("Log stream idle for %.1fs; restarting", idle_timeout)
                    await start_log(session, 0)
                    last_activity = loop.time()
                continue

            last_activity = loop.time()
            if reply is ACK:
                continue
            lines += 1
            on_line(reply.decode("utf-8", errors="replace"))
    finally:
        if not session.closed:
            try:
                await _stop_and_drain(session, timeout)
            except NaosLinkError as exc:
                logger.debug("Could not stop log stream: %s", exc)

    return lines


async def _stop_and_drain(session: Session, timeout: float) -> None:
    # Lines may still be in flight, so the stop ack is awaited by draining.
    await stop_log(session, 0)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while (remaining := deadline - loop.time()) > 0:
        try:
            reply = await session.receive(Endpoint.DEBUG, expect_ack=True, timeout=remaining)
        except SessionTimeout:
            logger.debug("No ack for log stop within %.1fs", timeout)
            return
        if reply is ACK:
            return


__all__ = [
    "check_coredump",
    "delete_coredump",
    "read_coredump",
    "receive_log",
    "start_log",
    "stop_log",
    "stream_log",
]
