"""Tests for link statistics and the Prometheus exporter."""

from __future__ import annotations

import pytest

from naoslink.metrics import STATISTICS, LinkStatistics, build_registry, render_metrics
from naoslink.session import Session
from tests.mocks import FakeChannel


def test_record_snapshot_reset() -> None:
    stats = LinkStatistics()
    stats.record("frames_written")
    stats.record("frames_written", 2)

    assert stats.snapshot()["frames_written"] == 3
    stats.reset()
    assert stats.snapshot() == LinkStatistics().snapshot()


def test_registry_exports_gauges() -> None:
    stats = LinkStatistics(frames_read=5, timeouts=1)
    registry = build_registry(stats)

    assert registry.get_sample_value("naoslink_frames_read") == 5
    assert registry.get_sample_value("naoslink_timeouts") == 1

    text = render_metrics(registry).decode()
    assert "# TYPE naoslink_sessions_opened gauge" in text


@pytest.mark.asyncio
async def test_session_traffic_is_counted(channel: FakeChannel) -> None:
    session = await Session.open(channel)
    await session.ping()
    await session.end()

    snapshot = STATISTICS.snapshot()
    assert snapshot["frames_written"] == 3
    assert snapshot["frames_read"] == 3
    assert snapshot["sessions_opened"] == 1
    assert snapshot["sessions_ended"] == 1
    assert build_registry().get_sample_value("naoslink_frames_written") == 3
