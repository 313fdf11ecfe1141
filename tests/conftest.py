"""Pytest configuration for naoslink tests."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from naoslink.metrics import STATISTICS
from tests.mocks import FakeChannel, FakeDevice, FakeFirmware


@pytest.fixture(autouse=True)
def reset_statistics() -> Iterator[None]:
    STATISTICS.reset()
    yield
    STATISTICS.reset()


@pytest.fixture(autouse=True)
def reset_logging_handlers() -> Iterator[None]:
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture()
def firmware() -> FakeFirmware:
    return FakeFirmware()


@pytest.fixture()
def device(firmware: FakeFirmware) -> FakeDevice:
    return FakeDevice("dev", firmware)


@pytest.fixture()
def channel(device: FakeDevice, firmware: FakeFirmware) -> FakeChannel:
    return FakeChannel(device, firmware)
