"""Transport contract: frame queues, channels and devices.

A transport supplies a :class:`Device` that opens :class:`Channel` objects.
Sessions subscribe a :class:`FrameQueue` to a channel and receive every frame
the channel reads; filtering by session id happens in the session.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from ..const import DEFAULT_QUEUE_CAPACITY
from ..errors import ChannelClosedError, SessionTimeout
from ..metrics import STATISTICS, LinkStatistics

logger = logging.getLogger("naoslink.transport")


class FrameQueue:
    """Bounded mailbox of raw frames.

    Producers never block: a frame arriving while the queue is full is
    dropped and counted. A single consumer reads with an optional timeout.
    """

    def __init__(self, capacity: int = DEFAULT_QUEUE_CAPACITY, *, stats: LinkStatistics | None = None) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=capacity)
        self._stats = stats if stats is not None else STATISTICS
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, data: bytes) -> bool:
        """Enqueue *data*; return False if it was dropped."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(bytes(data))
        except asyncio.QueueFull:
            self.dropped += 1
            self._stats.record("frames_dropped")
            logger.debug("Frame queue full; dropped %d bytes", len(data))
            return False
        return True

    async def get(self, timeout: float | None = None) -> bytes:
        """Return the next frame, waiting at most *timeout* seconds."""
        try:
            async with asyncio.timeout(timeout):
                data = await self._queue.get()
        except TimeoutError as exc:
            raise SessionTimeout(f"no frame within {timeout}s") from exc
        if data is None:
            # Keep the marker so later readers fail as well.
            self._queue.put_nowait(None)
            raise ChannelClosedError("channel closed")
        return data

    def clear(self) -> int:
        """Discard queued frames and return how many were removed."""
        removed = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return removed
            if item is None:
                self._queue.put_nowait(None)
                return removed
            removed += 1

    def close(self) -> None:
        """Wake the consumer with :class:`ChannelClosedError`."""
        if self._closed:
            return
        self._closed = True
        self.clear()
        self._queue.put_nowait(None)

    def __len__(self) -> int:
        return self._queue.qsize()


class Channel(ABC):
    """Raw frame link to one device."""

    @property
    @abstractmethod
    def device(self) -> Device: ...

    @abstractmethod
    def subscribe(self, queue: FrameQueue) -> None: ...

    @abstractmethod
    def unsubscribe(self, queue: FrameQueue) -> None: ...

    @abstractmethod
    async def write(self, data: bytes) -> None: ...

    @abstractmethod
    def width(self) -> int:
        """Number of chunks sent per acknowledged chunk in windowed writes."""

    @abstractmethod
    async def close(self) -> None: ...


class Device(ABC):
    """Something a channel can be opened to."""

    @property
    @abstractmethod
    def id(self) -> str: ...

    @abstractmethod
    async def open(self) -> Channel: ...


class BaseChannel(Channel):
    """Channel with a subscriber table and fan-out dispatch."""

    def __init__(self, device: Device) -> None:
        self._device = device
        self._queues: list[FrameQueue] = []
        self._closed = False

    @property
    def device(self) -> Device:
        return self._device

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, queue: FrameQueue) -> None:
        if queue not in self._queues:
            self._queues.append(queue)

    def unsubscribe(self, queue: FrameQueue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def dispatch(self, data: bytes) -> None:
        """Deliver an inbound frame to every subscribed queue."""
        for queue in list(self._queues):
            queue.put(data)

    def _close_queues(self) -> None:
        self._closed = True
        queues, self._queues = self._queues, []
        for queue in queues:
            queue.close()


__all__ = [
    "BaseChannel",
    "Channel",
    "Device",
    "FrameQueue",
]
