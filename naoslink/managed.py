"""Long-lived device wrapper with a cached, auto-unlocked session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .const import DEFAULT_HANDSHAKE_TIMEOUT, DEFAULT_PING_INTERVAL
from .errors import DeviceInactiveError, NaosLinkError
from .protocol.protocol import SessionStatus
from .session import Session
from .transport.base import Channel, Device

logger = logging.getLogger("naoslink.managed")

T = TypeVar("T")

_REQUEST_TIMEOUT = 1.0


class ManagedDevice:
    """Owns at most one channel and one cached session for a device.

    All state changes happen under one lock; the background pinger takes the
    same lock, so it never interleaves with :meth:`use_session`.
    """

    def __init__(
        self,
        device: Device,
        *,
        password: str = "",
        ping_interval: float = DEFAULT_PING_INTERVAL,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
    ) -> None:
        self._device = device
        self._password = password
        self._ping_interval = ping_interval
        self._handshake_timeout = handshake_timeout
        self._channel: Channel | None = None
        self._session: Session | None = None
        self._lock = asyncio.Lock()
        self._stopped = asyncio.Event()
        self._pinger: asyncio.Task[None] | None = None

    @property
    def device(self) -> Device:
        return self._device

    @property
    def password(self) -> str:
        return self._password

    @password.setter
    def password(self, value: str) -> None:
        self._password = value

    @property
    def active(self) -> bool:
        return self._channel is not None

    @property
    def has_session(self) -> bool:
        return self._session is not None

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    async def activate(self) -> None:
        """Open the channel if it is not open yet."""
        async with self._lock:
            if self._stopped.is_set():
                raise DeviceInactiveError(f"{self._device.id} is stopped")
            if self._pinger is None:
                self._pinger = asyncio.create_task(self._ping_loop(), name=f"naoslink-pinger-{self._device.id}")
            if self._channel is not None:
                return
            self._channel = await self._device.open()
            logger.info("Activated %s", self._device.id)

    async def new_session(self) -> Session:
        """Open an extra session the caller owns and must end."""
        async with self._lock:
            return await self._open_session()

    async def use_session(self, fn: Callable[[Session], Awaitable[T]]) -> T:
        """Run *fn* with the cached session, opening it on first use.

        Any error from *fn* ends and drops the cached session.
        """
        async with self._lock:
            if self._session is None:
                self._session = await self._open_session()

            try:
                return await fn(self._session)
            except BaseException:
                await self._end_session()
                raise

    async def deactivate(self) -> None:
        """End the cached session and close the channel."""
        async with self._lock:
            await self._teardown()

    async def stop(self) -> None:
        """Deactivate and stop the pinger; the device cannot be reused."""
        self._stopped.set()
        async with self._lock:
            await self._teardown()
            self._password = ""

        if self._pinger is not None:
            self._pinger.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pinger
            self._pinger = None

    async def _open_session(self) -> Session:
        if self._channel is None:
            raise DeviceInactiveError(f"{self._device.id} is not active")

        session = await Session.open(self._channel, self._handshake_timeout)
        try:
            status = await session.status(_REQUEST_TIMEOUT)
            if self._password and status & SessionStatus.LOCKED:
                if not await session.unlock(self._password, _REQUEST_TIMEOUT):
                    logger.warning("Password rejected by %s", self._device.id)
        except BaseException:
            with contextlib.suppress(NaosLinkError):
                await session.end(_REQUEST_TIMEOUT)
            raise

        return session

    async def _end_session(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            await session.end(_REQUEST_TIMEOUT)
        except NaosLinkError as exc:
            logger.debug("Ending session on %s failed: %s", self._device.id, exc)

    async def _teardown(self) -> None:
        await self._end_session()
        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.close()
            logger.info("Deactivated %s", self._device.id)

    async def _ping_loop(self) -> None:
        while not self._stopped.is_set():
            try:
                await asyncio.wait_for(self._stopped.wait(), self._ping_interval)
                return
            except TimeoutError:
                pass

            async with self._lock:
                if self._session is None:
                    continue
                try:
                    await self._session.ping(_REQUEST_TIMEOUT)
                except NaosLinkError as exc:
                    logger.warning("Ping to %s failed: %s", self._device.id, exc)

    def __repr__(self) -> str:
        return f"<ManagedDevice {self._device.id} active={self.active} session={self.has_session}>"


__all__ = ["ManagedDevice"]
