"""Bounded-parallelism execution of a session task across devices."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import msgspec

from .const import DEFAULT_HANDSHAKE_TIMEOUT
from .session import Session
from .transport.base import Device

logger = logging.getLogger("naoslink.execute")

SessionTask = Callable[[Session], Awaitable[Any]]


class Result(msgspec.Struct):
    """Outcome of a task on one device."""

    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def _run_one(device: Device, fn: SessionTask, handshake_timeout: float) -> Any:
    channel = await device.open()
    try:
        session = await Session.open(channel, handshake_timeout)
        return await fn(session)
    finally:
        await channel.close()


async def execute(
    devices: Sequence[Device],
    parallel: int,
    fn: SessionTask,
    *,
    handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
) -> list[Result]:
    """Run *fn* on a fresh session per device, at most *parallel* at a time.

    Results are returned in the order of *devices*; a failing device only
    affects its own entry.
    """
    parallel = max(1, parallel)
    results: list[Result] = [Result() for _ in devices]

    queue: asyncio.Queue[int] = asyncio.Queue()
    for index in range(len(devices)):
        queue.put_nowait(index)

    async def worker() -> None:
        while True:
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            device = devices[index]
            try:
                results[index] = Result(value=await _run_one(device, fn, handshake_timeout))
            except Exception as exc:
                logger.warning("Task on %s failed: %s", device.id, exc)
                results[index] = Result(error=exc)

    async with asyncio.TaskGroup() as group:
        for _ in range(min(parallel, len(devices))):
            group.create_task(worker())

    return results


__all__ = [
    "Result",
    "SessionTask",
    "execute",
]
