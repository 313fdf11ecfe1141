"""Tests for the firmware update sub-protocol."""

from __future__ import annotations

import math

import pytest

from naoslink.errors import ProtocolViolation, SessionTimeout
from naoslink.protocol.protocol import Endpoint, UpdateCommand
from naoslink.protocol.structures import UpdateWritePacket
from naoslink.services.update import update, update_with_retries
from naoslink.session import Session
from tests.mocks import FakeChannel, FakeFirmware


@pytest.mark.asyncio
async def test_update_streams_image(channel: FakeChannel, firmware: FakeFirmware) -> None:
    session = await Session.open(channel)
    image = bytes(range(256)) * 20
    progress: list[int] = []

    await update(session, image, progress.append)

    assert firmware.flashed == image
    assert progress[-1] == len(image)

    writes = [UpdateWritePacket.decode(f.payload[1:]) for f in firmware.frames_on(Endpoint.UPDATE, UpdateCommand.WRITE)]
    chunk = firmware.mtu - 2
    assert len(writes) == math.ceil(len(image) / chunk)
    assert all(len(packet.data) <= chunk for packet in writes)
    assert [index for index, packet in enumerate(writes) if packet.acked] == list(range(0, len(writes), 10))


@pytest.mark.asyncio
async def test_update_rejects_bad_begin_status(channel: FakeChannel, firmware: FakeFirmware) -> None:
    session = await Session.open(channel)
    firmware.update_begin_failures = 1

    with pytest.raises(ProtocolViolation, match="expected begun"):
        await update(session, b"image")
    assert firmware.flashed is None


@pytest.mark.asyncio
async def test_update_with_retries_restarts_from_scratch(channel: FakeChannel, firmware: FakeFirmware) -> None:
    session = await Session.open(channel)
    firmware.update_begin_failures = 2

    await update_with_retries(session, b"\xAB" * 300, attempts=3, delay=0)

    assert firmware.flashed == b"\xAB" * 300
    assert len(firmware.frames_on(Endpoint.UPDATE, UpdateCommand.BEGIN)) == 3


@pytest.mark.asyncio
async def test_update_with_retries_gives_up(channel: FakeChannel, firmware: FakeFirmware) -> None:
    session = await Session.open(channel)
    firmware.silent_endpoints.add(Endpoint.UPDATE)

    with pytest.raises(SessionTimeout):
        await update_with_retries(session, b"image", timeout=0.02, attempts=2, delay=0)

    assert len(firmware.frames_on(Endpoint.UPDATE, UpdateCommand.BEGIN)) == 2
