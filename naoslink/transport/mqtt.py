"""MQTT transport.

One :class:`MqttRouter` holds the broker connection and fans inbound messages
out to per-topic callbacks. Each :class:`MqttDevice` writes frames to
``<base>/naos/inbox`` and reads them from ``<base>/naos/outbox``.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from collections.abc import Callable
from typing import Any

import aiomqtt
import tenacity

from ..config.settings import LinkConfig
from ..const import DEFAULT_MQTT_QOS
from ..util import log_hexdump
from .base import BaseChannel, Channel, Device

logger = logging.getLogger("naoslink.transport.mqtt")

MQTT_WIDTH = 10
INBOX_SUFFIX = "naos/inbox"
OUTBOX_SUFFIX = "naos/outbox"

MessageCallback = Callable[[bytes], None]
CloseCallback = Callable[[], None]


def _log_retry_attempt(retry_state: tenacity.RetryCallState) -> None:
    if retry_state.attempt_number > 1:
        logger.info(
            "Reconnecting MQTT (attempt %d, next wait %.2fs)...",
            retry_state.attempt_number,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )


def _payload_bytes(payload: Any) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    return str(payload).encode("utf-8")


class MqttRouter:
    """Shares one broker connection between many subscribers."""

    def __init__(self, client: aiomqtt.Client, *, qos: int = DEFAULT_MQTT_QOS, connect_attempts: int = 5) -> None:
        self._client = client
        self._qos = qos
        self._connect_attempts = connect_attempts
        self._routes: dict[str, dict[int, MessageCallback]] = {}
        self._closers: dict[int, CloseCallback] = {}
        self._handles = itertools.count(1)
        self._lock = asyncio.Lock()
        self._reader: asyncio.Task[None] | None = None

    @classmethod
    def from_config(cls, config: LinkConfig) -> MqttRouter:
        client = aiomqtt.Client(
            hostname=config.mqtt_host,
            port=config.mqtt_port,
            username=config.mqtt_user or None,
            password=config.mqtt_pass or None,
            identifier=config.mqtt_client_id or None,
            logger=logging.getLogger("naoslink.mqtt.client"),
        )
        return cls(client, qos=config.mqtt_qos)

    async def connect(self) -> None:
        """Connect to the broker, retrying with backoff, and start reading."""
        retryer = tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(self._connect_attempts),
            wait=tenacity.wait_exponential(multiplier=1, max=30),
            retry=tenacity.retry_if_exception_type((aiomqtt.MqttError, OSError)),
            before_sleep=_log_retry_attempt,
            reraise=True,
        )
        async for attempt in retryer:
            with attempt:
                await self._client.__aenter__()

        logger.info("Connected to MQTT broker.")
        self._reader = asyncio.create_task(self._read_loop(), name="naoslink-mqtt-reader")

    async def close(self) -> None:
        reader, self._reader = self._reader, None
        try:
            if reader is not None:
                reader.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reader
        finally:
            await self._client.__aexit__(None, None, None)

    async def __aenter__(self) -> MqttRouter:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def subscribe(self, topic: str, callback: MessageCallback, on_close: CloseCallback | None = None) -> int:
        """Route messages on *topic* to *callback*; return a handle for unsubscribing.

        *on_close* runs once when the router stops reading from the broker.
        """
        async with self._lock:
            callbacks = self._routes.get(topic)
            if callbacks is None:
                await self._client.subscribe(topic, qos=self._qos)
                callbacks = self._routes[topic] = {}
            handle = next(self._handles)
            callbacks[handle] = callback
            if on_close is not None:
                self._closers[handle] = on_close
            return handle

    async def unsubscribe(self, topic: str, handle: int) -> None:
        async with self._lock:
            self._closers.pop(handle, None)
            callbacks = self._routes.get(topic)
            if callbacks is None or callbacks.pop(handle, None) is None:
                return
            if not callbacks:
                del self._routes[topic]
                await self._client.unsubscribe(topic)

    async def publish(self, topic: str, payload: bytes) -> None:
        log_hexdump(logger, logging.DEBUG, f"MQTT PUB > {topic}", payload)
        await self._client.publish(topic, payload, qos=self._qos)

    def dispatch(self, topic: str, payload: bytes) -> int:
        """Deliver *payload* to the callbacks of *topic*; return how many ran."""
        callbacks = list(self._routes.get(topic, {}).values())
        for callback in callbacks:
            callback(payload)
        return len(callbacks)

    def _close_subscribers(self) -> None:
        closers, self._closers = self._closers, {}
        for on_close in closers.values():
            on_close()

    async def _read_loop(self) -> None:
        try:
            async for message in self._client.messages:
                topic = str(message.topic)
                payload = _payload_bytes(message.payload)
                log_hexdump(logger, logging.DEBUG, f"MQTT SUB < {topic}", payload)
                self.dispatch(topic, payload)
        except aiomqtt.MqttError as exc:
            logger.warning("MQTT connection lost: %s", exc)
        finally:
            self._close_subscribers()


class MqttChannel(BaseChannel):
    def __init__(self, device: MqttDevice) -> None:
        super().__init__(device)
        self._device_ref = device
        self.handle: int | None = None

    async def write(self, data: bytes) -> None:
        await self._device_ref.router.publish(self._device_ref.inbox, data)

    def width(self) -> int:
        return MQTT_WIDTH

    async def close(self) -> None:
        if self.handle is not None:
            await self._device_ref.router.unsubscribe(self._device_ref.outbox, self.handle)
            self.handle = None
        self._close_queues()


class MqttDevice(Device):
    """A device reachable under *base_topic* on a shared broker connection."""

    def __init__(self, router: MqttRouter, base_topic: str) -> None:
        self.router = router
        self.base_topic = base_topic.strip("/")

    @property
    def id(self) -> str:
        return f"mqtt/{self.base_topic}"

    @property
    def inbox(self) -> str:
        return f"{self.base_topic}/{INBOX_SUFFIX}"

    @property
    def outbox(self) -> str:
        return f"{self.base_topic}/{OUTBOX_SUFFIX}"

    async def open(self) -> Channel:
        channel = MqttChannel(self)
        channel.handle = await self.router.subscribe(self.outbox, channel.dispatch, channel._close_queues)
        return channel


__all__ = [
    "MqttChannel",
    "MqttDevice",
    "MqttRouter",
]
