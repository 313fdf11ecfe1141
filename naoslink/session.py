"""Session protocol riding on a channel.

A session is negotiated with a random 16-byte handle on the handshake
endpoint, exchanges requests and acknowledgements on sub-protocol endpoints
and is torn down with an empty frame on the end endpoint. Every operation
holds the session lock, so a session has at most one request in flight.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum
from typing import Final

from transitions import Machine

from .const import DEFAULT_HANDSHAKE_TIMEOUT, DEFAULT_QUEUE_CAPACITY, DEFAULT_TIMEOUT
from .errors import (
    FramingError,
    ProtocolViolation,
    SessionClosedError,
    SessionTimeout,
    UnexpectedAckError,
    error_for_code,
)
from .metrics import STATISTICS, LinkStatistics
from .protocol.frame import Frame
from .protocol.protocol import (
    HANDLE_LENGTH,
    UINT8_STRUCT,
    UINT16_STRUCT,
    ControlCode,
    Endpoint,
    SessionStatus,
    SystemCommand,
)
from .protocol.structures import PasswordPacket, command
from .transport.base import Channel, FrameQueue
from .util import log_hexdump

logger = logging.getLogger("naoslink.session")


class Ack(Enum):
    """Sentinel returned by :meth:`Session.receive` for an expected ack."""

    ACK = "ack"

    def __repr__(self) -> str:
        return "ACK"


ACK: Final = Ack.ACK

Reply = bytes | Ack


class Session:
    """A handshake-negotiated conversation with one device."""

    STATE_UNOPENED = "unopened"
    STATE_OPEN = "open"
    STATE_ENDED = "ended"

    fsm_state: str

    def __init__(
        self,
        channel: Channel,
        queue: FrameQueue,
        *,
        stats: LinkStatistics | None = None,
    ) -> None:
        self.channel = channel
        self._queue = queue
        self._stats = stats if stats is not None else STATISTICS
        self._lock = asyncio.Lock()
        self._id = 0
        self._mtu = 0

        self.machine = Machine(
            model=self,
            states=[self.STATE_UNOPENED, self.STATE_OPEN, self.STATE_ENDED],
            initial=self.STATE_UNOPENED,
            model_attribute="fsm_state",
            ignore_invalid_triggers=True,
        )
        self.machine.add_transition("mark_open", self.STATE_UNOPENED, self.STATE_OPEN)
        self.machine.add_transition("mark_ended", "*", self.STATE_ENDED)

    @classmethod
    async def open(
        cls,
        channel: Channel,
        timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        *,
        queue_capacity: int = DEFAULT_QUEUE_CAPACITY,
        stats: LinkStatistics | None = None,
    ) -> Session:
        """Open a new session on *channel*."""
        queue = FrameQueue(queue_capacity, stats=stats)
        channel.subscribe(queue)
        session = cls(channel, queue, stats=stats)
        try:
            await session._handshake(timeout)
        except BaseException:
            channel.unsubscribe(queue)
            session.mark_ended()
            raise
        return session

    @property
    def id(self) -> int:
        return self._id

    @property
    def closed(self) -> bool:
        return self.fsm_state == self.STATE_ENDED

    # --- Frame I/O ---

    async def _write(self, endpoint: int, payload: bytes = b"", *, session: int | None = None) -> None:
        data = Frame.build(self._id if session is None else session, endpoint, payload)
        log_hexdump(logger, logging.DEBUG, "TX", data, session=self._id)
        await self.channel.write(data)
        self._stats.record("frames_written")

    async def _next_frame(self, deadline: float) -> Frame:
        remaining = deadline - asyncio.get_running_loop().time()
        try:
            if remaining <= 0:
                raise SessionTimeout("deadline exceeded")
            data = await self._queue.get(remaining)
        except SessionTimeout:
            self._stats.record("timeouts")
            raise
        self._stats.record("frames_read")
        log_hexdump(logger, logging.DEBUG, "RX", data, session=self._id)
        try:
            return Frame.from_bytes(data)
        except FramingError:
            self._stats.record("framing_errors")
            raise

    async def _read(self, timeout: float) -> Frame:
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            frame = await self._next_frame(deadline)
            if frame.session == self._id:
                return frame

    def _check_ack(self, frame: Frame) -> None:
        if frame.endpoint != Endpoint.CONTROL or len(frame.payload) != 1:
            raise ProtocolViolation("invalid message: ack reply")
        if frame.payload[0] != ControlCode.ACK:
            self._stats.record("control_errors")
            raise error_for_code(frame.payload[0])

    async def _receive(self, endpoint: int, expect_ack: bool, timeout: float) -> Reply:
        frame = await self._read(timeout)

        if frame.endpoint == Endpoint.CONTROL:
            if len(frame.payload) != 1:
                raise ProtocolViolation(f"invalid ack size: {len(frame.payload)}")
            if frame.payload[0] == ControlCode.ACK:
                if expect_ack:
                    return ACK
                raise UnexpectedAckError("unexpected ack")
            self._stats.record("control_errors")
            raise error_for_code(frame.payload[0])

        if frame.endpoint != endpoint:
            raise ProtocolViolation(f"unexpected endpoint: {frame.endpoint}")

        return frame.payload

    async def _send(self, endpoint: int, data: bytes, ack_timeout: float) -> None:
        await self._write(endpoint, data)
        if ack_timeout <= 0:
            return
        self._check_ack(await self._read(ack_timeout))

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        async with self._lock:
            if self.fsm_state != self.STATE_OPEN:
                raise SessionClosedError(f"session {self._id} is {self.fsm_state}")
            yield

    # --- Lifecycle ---

    async def _handshake(self, timeout: float) -> None:
        handle = secrets.token_bytes(HANDLE_LENGTH)
        async with self._lock:
            await self._write(Endpoint.HANDSHAKE, handle, session=0)
            deadline = asyncio.get_running_loop().time() + timeout
            while True:
                frame = await self._next_frame(deadline)
                # Other handshakes on the same channel carry different handles.
                if frame.endpoint == Endpoint.HANDSHAKE and frame.payload == handle:
                    self._id = frame.session
                    break

        self.mark_open()
        self._stats.record("sessions_opened")
        logger.debug("Opened session %d on %s", self._id, self.channel.device.id)

    async def end(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        """End the session and release its queue."""
        async with self._lock:
            if self.fsm_state == self.STATE_ENDED:
                return
            try:
                await self._write(Endpoint.END)
                frame = await self._read(timeout)
                if frame.endpoint != Endpoint.END or frame.payload:
                    raise ProtocolViolation("invalid message: end reply")
            finally:
                self.channel.unsubscribe(self._queue)
                self.mark_ended()
                self._stats.record("sessions_ended")
                logger.debug("Ended session %d", self._id)

    def flush(self) -> int:
        """Drop frames already queued for this session."""
        return self._queue.clear()

    # --- Requests ---

    async def ping(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Check that the session is still known to the device."""
        async with self._exclusive():
            await self._write(Endpoint.CONTROL)
            self._check_ack(await self._read(timeout))

    async def query(self, endpoint: int, timeout: float = DEFAULT_TIMEOUT) -> bool:
        """Return whether the device implements *endpoint*."""
        async with self._exclusive():
            await self._write(endpoint)
            frame = await self._read(timeout)
            if frame.endpoint != Endpoint.CONTROL or len(frame.payload) != 1:
                raise ProtocolViolation("invalid message: query reply")
            return frame.payload[0] == ControlCode.ACK

    async def receive(self, endpoint: int, expect_ack: bool = False, timeout: float = DEFAULT_TIMEOUT) -> Reply:
        """Wait for a frame on *endpoint*.

        A control-endpoint ack is returned as :data:`ACK` when *expect_ack*
        is set and raises :class:`UnexpectedAckError` otherwise. Other control
        codes raise the matching :class:`SessionError`.
        """
        async with self._exclusive():
            return await self._receive(endpoint, expect_ack, timeout)

    async def send(self, endpoint: int, data: bytes = b"", ack_timeout: float = 0) -> None:
        """Write *data* to *endpoint*, then await an ack unless *ack_timeout* is 0."""
        async with self._exclusive():
            await self._send(endpoint, data, ack_timeout)

    async def status(self, timeout: float = DEFAULT_TIMEOUT) -> SessionStatus:
        async with self._exclusive():
            await self._write(Endpoint.SYSTEM, command(SystemCommand.STATUS))
            reply = await self._receive(Endpoint.SYSTEM, False, timeout)
            if len(reply) != 1:
                raise ProtocolViolation("invalid message: status reply")
            return SessionStatus(reply[0])

    async def unlock(self, password: str, timeout: float = DEFAULT_TIMEOUT) -> bool:
        """Unlock a locked session; return whether the password matched."""
        async with self._exclusive():
            await self._write(Endpoint.SYSTEM, command(SystemCommand.UNLOCK, PasswordPacket(password=password)))
            reply = await self._receive(Endpoint.SYSTEM, False, timeout)
            if len(reply) != 1:
                raise ProtocolViolation("invalid message: unlock reply")
            return UINT8_STRUCT.parse(reply) == 1

    async def get_mtu(self, timeout: float = DEFAULT_TIMEOUT) -> int:
        """Return the negotiated MTU, asking the device only once."""
        async with self._exclusive():
            if self._mtu:
                return self._mtu
            await self._write(Endpoint.SYSTEM, command(SystemCommand.GET_MTU))
            reply = await self._receive(Endpoint.SYSTEM, False, timeout)
            if len(reply) != 2:
                raise ProtocolViolation("invalid message: MTU reply")
            self._mtu = UINT16_STRUCT.parse(reply)
            return self._mtu

    def __repr__(self) -> str:
        return f"<Session id={self._id} state={self.fsm_state}>"


__all__ = [
    "ACK",
    "Ack",
    "Reply",
    "Session",
]
