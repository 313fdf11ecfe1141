"""Metric store sub-protocol and the caching MetricsService."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import msgspec
from construct import ConstructError

from ..const import DEFAULT_SERVICE_TIMEOUT, DEFAULT_TIMEOUT
from ..errors import NotFoundError, ProtocolViolation
from ..protocol.protocol import (
    METRIC_ELEMENT_STRUCTS,
    METRIC_SAMPLE_STRUCTS,
    Endpoint,
    MetricLayoutReply,
    MetricsCommand,
    MetricType,
)
from ..protocol.structures import MetricInfo, MetricKeyPacket, MetricValuePacket, RefPacket, command
from ..session import Session
from .transfer import iter_until_ack

logger = logging.getLogger("naoslink.service.metrics")

_INFO_MIN_SIZE = 4


class MetricLayout(msgspec.Struct):
    """Dimension keys of a vector metric and the labels along each key."""

    keys: list[str] = msgspec.field(default_factory=list)
    values: list[list[str]] = msgspec.field(default_factory=list)


async def list_metrics(session: Session, timeout: float = DEFAULT_TIMEOUT) -> list[MetricInfo]:
    """Return every metric declared by the device."""
    await session.send(Endpoint.METRICS, command(MetricsCommand.LIST))

    infos: list[MetricInfo] = []
    async for reply in iter_until_ack(session, Endpoint.METRICS, timeout):
        if len(reply) < _INFO_MIN_SIZE:
            raise ProtocolViolation("invalid metric info reply")
        infos.append(MetricInfo.decode(reply))

    return infos


async def describe_metric(session: Session, ref: int, timeout: float = DEFAULT_TIMEOUT) -> MetricLayout:
    """Return the dimension layout of the referenced metric."""
    await session.send(Endpoint.METRICS, command(MetricsCommand.DESCRIBE, RefPacket(ref=ref)))

    layout = MetricLayout()
    async for reply in iter_until_ack(session, Endpoint.METRICS, timeout):
        if not reply:
            raise ProtocolViolation("empty metric layout reply")
        try:
            tag = MetricLayoutReply(reply[0])
        except ValueError as exc:
            raise ProtocolViolation(f"unknown metric layout reply {reply[0]}") from exc

        match tag:
            case MetricLayoutReply.KEY:
                key = MetricKeyPacket.decode(reply[1:])
                layout.keys.append(key.name)
                layout.values.append([])
            case MetricLayoutReply.VALUE:
                value = MetricValuePacket.decode(reply[1:])
                if value.key >= len(layout.values):
                    raise ProtocolViolation(f"metric layout value for unknown key {value.key}")
                layout.values[value.key].append(value.name)

    return layout


async def read_metrics(session: Session, ref: int, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Return the raw sample of the referenced metric."""
    await session.send(Endpoint.METRICS, command(MetricsCommand.READ, RefPacket(ref=ref)))
    return await session.receive(Endpoint.METRICS, timeout=timeout)


def decode_sample(data: bytes, metric_type: MetricType) -> list[float]:
    """Decode a little-endian sample into floats."""
    width = METRIC_ELEMENT_STRUCTS[metric_type].sizeof()
    if len(data) % width:
        raise ProtocolViolation(f"sample of {len(data)} bytes is not a multiple of {width}")
    try:
        return [float(value) for value in METRIC_SAMPLE_STRUCTS[metric_type].parse(data)]
    except ConstructError as exc:
        raise ProtocolViolation(f"malformed metric sample: {exc}") from exc


class MetricsService:
    """Caches metric declarations and layouts for one session."""

    def __init__(self, session: Session, timeout: float = DEFAULT_SERVICE_TIMEOUT) -> None:
        self.session = session
        self.timeout = timeout
        self._infos: list[MetricInfo] = []
        self._by_name: dict[str, MetricInfo] = {}
        self._by_ref: dict[int, MetricInfo] = {}
        self._layouts: dict[int, MetricLayout] = {}

    async def list(self) -> list[MetricInfo]:
        """Index the declared metrics and describe the vector ones."""
        infos = await list_metrics(self.session, self.timeout)
        self._infos = infos
        self._by_name = {info.name: info for info in infos}
        self._by_ref = {info.ref: info for info in infos}
        self._layouts = {}
        for info in infos:
            if info.size > 1:
                self._layouts[info.ref] = await describe_metric(self.session, info.ref, self.timeout)
        logger.debug("Listed %d metrics (%d with layouts)", len(infos), len(self._layouts))
        return infos

    def has(self, name: str) -> bool:
        return name in self._by_name

    def get(self, name: str) -> MetricInfo | None:
        return self._by_name.get(name)

    def layout(self, name: str) -> MetricLayout | None:
        info = self._by_name.get(name)
        return self._layouts.get(info.ref) if info is not None else None

    def all(self) -> Iterator[tuple[MetricInfo, MetricLayout | None]]:
        for info in self._infos:
            yield info, self._layouts.get(info.ref)

    async def read(self, name: str) -> list[float]:
        info = self._by_name.get(name)
        if info is None:
            raise NotFoundError(f"metric {name!r} not found")
        data = await read_metrics(self.session, info.ref, self.timeout)
        return decode_sample(data, info.type)


__all__ = [
    "MetricLayout",
    "MetricsService",
    "decode_sample",
    "describe_metric",
    "list_metrics",
    "read_metrics",
]
