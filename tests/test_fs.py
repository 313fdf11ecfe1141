"""Tests for the filesystem sub-protocol."""

from __future__ import annotations

import hashlib

import pytest

from naoslink.errors import PosixError, ProtocolViolation
from naoslink.protocol.protocol import Endpoint, FSCommand, FSReply, FSWriteFlag
from naoslink.protocol.structures import FSWritePacket
from naoslink.services import fs
from naoslink.session import Session
from tests.mocks import FakeChannel, FakeDevice, FakeFirmware


@pytest.fixture()
def populated(firmware: FakeFirmware) -> FakeFirmware:
    firmware.dirs.add("/data")
    firmware.files["/data/config.json"] = b'{"a": 1}'
    firmware.files["/data/log.txt"] = b"line\n" * 20
    firmware.dirs.add("/data/sub")
    firmware.files["/data/sub/deep.bin"] = b"\x00"
    return firmware


@pytest.mark.asyncio
async def test_stat_file_and_directory(channel: FakeChannel, populated: FakeFirmware) -> None:
    session = await Session.open(channel)

    info = await fs.stat_path(session, "/data/config.json")
    assert info == fs.FSInfo(name="config.json", is_dir=False, size=8)

    info = await fs.stat_path(session, "/data")
    assert info.is_dir
    assert info.name == "data"


@pytest.mark.asyncio
async def test_stat_missing_raises_posix_error(channel: FakeChannel) -> None:
    session = await Session.open(channel)

    with pytest.raises(PosixError) as excinfo:
        await fs.stat_path(session, "/nope")
    assert excinfo.value.message == "No such file or directory"

    # In-band errors leave the session usable.
    await session.ping()


@pytest.mark.asyncio
async def test_stat_rejects_wrong_info_size(channel: FakeChannel, firmware: FakeFirmware) -> None:
    session = await Session.open(channel)
    firmware.silent_endpoints.add(Endpoint.FS)
    channel.inject(session.id, Endpoint.FS, bytes([FSReply.INFO]) + b"\x00" * 6)

    with pytest.raises(ProtocolViolation, match="expected info"):
        await fs.stat_path(session, "/x")


@pytest.mark.asyncio
async def test_list_dir_returns_direct_children(channel: FakeChannel, populated: FakeFirmware) -> None:
    session = await Session.open(channel)

    entries = await fs.list_dir(session, "/data")

    assert entries == [
        fs.FSInfo(name="config.json", is_dir=False, size=8),
        fs.FSInfo(name="log.txt", is_dir=False, size=100),
        fs.FSInfo(name="sub", is_dir=True, size=0),
    ]


@pytest.mark.asyncio
async def test_write_then_read_round_trip_with_progress(firmware: FakeFirmware) -> None:
    channel = FakeChannel(FakeDevice("fs", firmware), firmware, width=10)
    session = await Session.open(channel)
    data = bytes(range(256)) * 47

    written: list[int] = []
    await fs.write_file(session, "/blob.bin", data, written.append)
    assert firmware.files["/blob.bin"] == data
    assert written[-1] == len(data)

    read: list[int] = []
    assert await fs.read_file(session, "/blob.bin", read.append) == data
    assert read == sorted(read)
    assert read[-1] == len(data)
    # More than one 5000-byte range was needed.
    assert len(firmware.frames_on(Endpoint.FS, FSCommand.READ)) == 3


@pytest.mark.asyncio
async def test_write_file_windowing(firmware: FakeFirmware) -> None:
    channel = FakeChannel(FakeDevice("fs", firmware), firmware, width=10)
    session = await Session.open(channel)
    chunk = firmware.mtu - 6

    await fs.write_file(session, "/w.bin", bytes(chunk * 17))

    writes = [FSWritePacket.decode(frame.payload[1:]) for frame in firmware.frames_on(Endpoint.FS, FSCommand.WRITE)]
    assert len(writes) == 17
    assert [packet.mode for packet in writes].count(0) == 2
    assert writes[1].mode == FSWriteFlag.SILENT | FSWriteFlag.SEQUENTIAL
    assert [packet.offset for packet in writes] == [i * chunk for i in range(17)]


@pytest.mark.asyncio
async def test_read_file_range(channel: FakeChannel, populated: FakeFirmware) -> None:
    session = await Session.open(channel)

    assert await fs.read_file_range(session, "/data/log.txt", 5, 10) == b"line\nline\n"


@pytest.mark.asyncio
async def test_read_empty_file_sends_no_read(channel: FakeChannel, firmware: FakeFirmware) -> None:
    firmware.files["/empty"] = b""
    session = await Session.open(channel)

    assert await fs.read_file(session, "/empty") == b""
    assert firmware.frames_on(Endpoint.FS, FSCommand.READ) == []


@pytest.mark.asyncio
async def test_rename_remove_and_mkdir(channel: FakeChannel, populated: FakeFirmware) -> None:
    session = await Session.open(channel)

    await fs.rename_path(session, "/data/log.txt", "/data/old.txt")
    assert "/data/old.txt" in populated.files
    assert "/data/log.txt" not in populated.files

    await fs.remove_path(session, "/data/old.txt")
    assert "/data/old.txt" not in populated.files
    with pytest.raises(PosixError):
        await fs.remove_path(session, "/data/old.txt")

    await fs.make_dir(session, "/data/new")
    assert (await fs.stat_path(session, "/data/new")).is_dir


@pytest.mark.asyncio
async def test_sha256_matches_local_digest(channel: FakeChannel, populated: FakeFirmware) -> None:
    session = await Session.open(channel)

    digest = await fs.sha256_file(session, "/data/config.json")

    assert digest == hashlib.sha256(b'{"a": 1}').digest()


@pytest.mark.asyncio
async def test_write_file_fails_without_payload_room(channel: FakeChannel) -> None:
    channel.firmware.mtu = 6
    session = await Session.open(channel)

    with pytest.raises(ProtocolViolation, match="no room"):
        await fs.write_file(session, "/tiny", b"x")


@pytest.mark.asyncio
async def test_acked_commands_raise_posix_errors(channel: FakeChannel, populated: FakeFirmware) -> None:
    session = await Session.open(channel)

    with pytest.raises(PosixError) as excinfo:
        await fs.open_file(session, "/data/missing.txt")
    assert excinfo.value.message == "No such file or directory"

    with pytest.raises(PosixError, match="Bad file descriptor"):
        await fs.close_file(session)

    with pytest.raises(PosixError, match="File exists"):
        await fs.make_dir(session, "/data/config.json")

    with pytest.raises(PosixError, match="No such file or directory"):
        await fs.remove_path(session, "/data/missing.txt")

    with pytest.raises(PosixError, match="No such file or directory"):
        await fs.rename_path(session, "/data/missing.txt", "/data/other.txt")

    await session.ping()


@pytest.mark.asyncio
async def test_read_range_of_missing_file_raises_posix_error(channel: FakeChannel) -> None:
    session = await Session.open(channel)

    with pytest.raises(PosixError, match="No such file or directory"):
        await fs.read_file_range(session, "/missing", 0, 10)

    assert channel.firmware.frames_on(Endpoint.FS, FSCommand.READ) == []
