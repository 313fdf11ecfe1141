"""Link statistics and their Prometheus projection."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import msgspec
from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

_GAUGE_DOC = "naoslink link statistic"


class LinkStatistics(msgspec.Struct):
    """Process-wide counters for frames and sessions."""

    frames_written: int = 0
    frames_read: int = 0
    frames_dropped: int = 0
    framing_errors: int = 0
    sessions_opened: int = 0
    sessions_ended: int = 0
    control_errors: int = 0
    timeouts: int = 0

    def record(self, counter: str, amount: int = 1) -> None:
        setattr(self, counter, getattr(self, counter) + amount)

    def snapshot(self) -> dict[str, int]:
        return msgspec.structs.asdict(self)

    def reset(self) -> None:
        for name in self.__struct_fields__:
            setattr(self, name, 0)


STATISTICS = LinkStatistics()


class LinkStatisticsCollector(Collector):
    """Prometheus collector that projects LinkStatistics snapshots."""

    def __init__(self, stats: LinkStatistics) -> None:
        self._stats = stats

    def collect(self) -> Iterator[Any]:
        for name, value in self._stats.snapshot().items():
            metric = GaugeMetricFamily(f"naoslink_{name}", _GAUGE_DOC)
            metric.add_metric((), value)
            yield metric


def build_registry(stats: LinkStatistics | None = None) -> CollectorRegistry:
    """Return a registry exporting *stats* (process statistics by default)."""
    registry = CollectorRegistry()
    registry.register(LinkStatisticsCollector(stats if stats is not None else STATISTICS))
    return registry


def render_metrics(registry: CollectorRegistry) -> bytes:
    """Render *registry* in the Prometheus text exposition format."""
    return generate_latest(registry)


__all__ = [
    "STATISTICS",
    "LinkStatistics",
    "LinkStatisticsCollector",
    "build_registry",
    "render_metrics",
]
