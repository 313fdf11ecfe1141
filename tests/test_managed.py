"""Tests for ManagedDevice session caching and keep-alive."""

from __future__ import annotations

import asyncio
import logging

import pytest

from naoslink.errors import DeviceInactiveError
from naoslink.managed import ManagedDevice
from naoslink.protocol.protocol import Endpoint, SessionStatus
from naoslink.session import Session
from tests.mocks import FakeDevice, FakeFirmware


async def _session_id(session: Session) -> int:
    return session.id


@pytest.mark.asyncio
async def test_activate_opens_channel_once(device: FakeDevice) -> None:
    managed = ManagedDevice(device)

    await managed.activate()
    await managed.activate()

    assert managed.active
    assert len(device.channels) == 1
    await managed.stop()


@pytest.mark.asyncio
async def test_use_session_reuses_cached_session(device: FakeDevice, firmware: FakeFirmware) -> None:
    managed = ManagedDevice(device)
    await managed.activate()

    first = await managed.use_session(_session_id)
    second = await managed.use_session(_session_id)

    assert first == second
    assert len(firmware.frames_on(Endpoint.HANDSHAKE)) == 1
    await managed.stop()


@pytest.mark.asyncio
async def test_use_session_error_drops_session(device: FakeDevice, firmware: FakeFirmware) -> None:
    managed = ManagedDevice(device)
    await managed.activate()
    first = await managed.use_session(_session_id)

    async def broken(session: Session) -> None:
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await managed.use_session(broken)

    assert not managed.has_session
    assert first not in firmware.sessions
    assert await managed.use_session(_session_id) != first
    await managed.stop()


@pytest.mark.asyncio
async def test_session_is_unlocked_with_password() -> None:
    firmware = FakeFirmware(password="secret")
    managed = ManagedDevice(FakeDevice("locked", firmware), password="secret")
    await managed.activate()

    async def status(session: Session) -> SessionStatus:
        return await session.status()

    assert await managed.use_session(status) == SessionStatus(0)
    await managed.stop()


@pytest.mark.asyncio
async def test_rejected_password_keeps_locked_session(caplog: pytest.LogCaptureFixture) -> None:
    firmware = FakeFirmware(password="secret")
    managed = ManagedDevice(FakeDevice("locked", firmware), password="guess")
    await managed.activate()

    async def status(session: Session) -> SessionStatus:
        return await session.status()

    with caplog.at_level(logging.WARNING, logger="naoslink.managed"):
        assert await managed.use_session(status) == SessionStatus.LOCKED
    assert "Password rejected" in caplog.text
    await managed.stop()


@pytest.mark.asyncio
async def test_new_session_is_owned_by_caller(device: FakeDevice, firmware: FakeFirmware) -> None:
    managed = ManagedDevice(device)
    await managed.activate()
    cached = await managed.use_session(_session_id)

    extra = await managed.new_session()

    assert extra.id != cached
    assert managed.has_session
    await extra.end()
    await managed.stop()


@pytest.mark.asyncio
async def test_inactive_device_refuses_sessions(device: FakeDevice) -> None:
    managed = ManagedDevice(device)

    with pytest.raises(DeviceInactiveError):
        await managed.use_session(_session_id)

    await managed.activate()
    await managed.use_session(_session_id)
    await managed.deactivate()

    assert not managed.active
    assert not managed.has_session
    assert device.channels[0].closed_calls == 1
    with pytest.raises(DeviceInactiveError):
        await managed.new_session()
    await managed.stop()


@pytest.mark.asyncio
async def test_stop_is_final(device: FakeDevice) -> None:
    managed = ManagedDevice(device, password="secret")
    await managed.activate()
    await managed.use_session(_session_id)

    await managed.stop()

    assert managed.stopped
    assert managed.password == ""
    assert not managed.active
    with pytest.raises(DeviceInactiveError):
        await managed.activate()


@pytest.mark.asyncio
async def test_pinger_keeps_session_alive(device: FakeDevice, firmware: FakeFirmware) -> None:
    managed = ManagedDevice(device, ping_interval=0.01)
    await managed.activate()
    await managed.use_session(_session_id)

    await asyncio.sleep(0.1)

    assert len(firmware.frames_on(Endpoint.CONTROL)) >= 2
    await managed.stop()


@pytest.mark.asyncio
async def test_failed_ping_is_logged_and_session_kept(
    device: FakeDevice,
    firmware: FakeFirmware,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.setattr("naoslink.managed._REQUEST_TIMEOUT", 0.02)
    managed = ManagedDevice(device, ping_interval=0.01)
    await managed.activate()
    await managed.use_session(_session_id)
    firmware.sessions.clear()

    with caplog.at_level(logging.WARNING, logger="naoslink.managed"):
        await asyncio.sleep(0.15)

    assert "Ping to fake/dev failed" in caplog.text
    assert managed.has_session
    await managed.stop()
