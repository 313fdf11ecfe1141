"""Filesystem sub-protocol.

A reply whose first byte is ``FSReply.ERROR`` carries a POSIX error message
and is raised as :class:`PosixError`, separate from control errors.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath

import msgspec

from ..const import DEFAULT_TIMEOUT
from ..errors import PosixError, ProtocolViolation
from ..protocol.protocol import (
    FS_INFO_SIZE,
    FS_READ_RANGE,
    FS_WRITE_OVERHEAD,
    SHA256_LENGTH,
    Endpoint,
    FSCommand,
    FSOpenFlag,
    FSReply,
    FSWriteFlag,
)
from ..protocol.structures import (
    ChunkPacket,
    DigestPacket,
    FSInfoPacket,
    FSOpenPacket,
    FSRenamePacket,
    FSWritePacket,
    NamePacket,
    RangePacket,
    command,
)
from ..session import ACK, Reply, Session
from .transfer import OffsetStream, ProgressCallback, windowed_write

logger = logging.getLogger("naoslink.service.fs")


class FSInfo(msgspec.Struct, frozen=True):
    """A file or directory entry."""

    name: str
    is_dir: bool
    size: int


async def _receive(session: Session, expect_ack: bool, timeout: float) -> Reply:
    reply = await session.receive(Endpoint.FS, expect_ack, timeout)
    if reply is ACK:
        return reply
    if not reply:
        raise ProtocolViolation("empty filesystem reply")
    if reply[0] == FSReply.ERROR:
        raise PosixError(reply[1:].decode("utf-8", errors="replace"))
    return reply


async def _request_ack(session: Session, data: bytes, what: str, timeout: float) -> None:
    # Failures arrive as an error reply on the FS endpoint instead of an ack.
    await session.send(Endpoint.FS, data)
    reply = await _receive(session, True, timeout)
    if reply is not ACK:
        raise ProtocolViolation(f"expected ack for {what}")


def _tagged(reply: Reply, tag: FSReply, min_size: int) -> bytes:
    if reply is ACK or reply[0] != tag or len(reply) < min_size:
        raise ProtocolViolation(f"invalid filesystem reply, expected {tag.name.lower()}")
    return reply[1:]


async def stat_path(session: Session, path: str, timeout: float = DEFAULT_TIMEOUT) -> FSInfo:
    """Return information about *path*."""
    await session.send(Endpoint.FS, command(FSCommand.STAT, NamePacket(name=path)))

    reply = await _receive(session, False, timeout)
    body = _tagged(reply, FSReply.INFO, 1 + FS_INFO_SIZE)
    if len(body) != FS_INFO_SIZE:
        raise ProtocolViolation("invalid filesystem reply, expected info")

    packet = FSInfoPacket.decode(body)
    return FSInfo(name=PurePosixPath(path).name, is_dir=packet.is_dir == 1, size=packet.size)


async def list_dir(session: Session, path: str, timeout: float = DEFAULT_TIMEOUT) -> list[FSInfo]:
    """Return the entries of directory *path*."""
    await session.send(Endpoint.FS, command(FSCommand.LIST, NamePacket(name=path)))

    infos: list[FSInfo] = []
    while True:
        reply = await _receive(session, True, timeout)
        if reply is ACK:
            return infos
        packet = FSInfoPacket.decode(_tagged(reply, FSReply.INFO, 1 + FS_INFO_SIZE + 1))
        infos.append(FSInfo(name=packet.name, is_dir=packet.is_dir == 1, size=packet.size))


async def open_file(session: Session, path: str, flags: FSOpenFlag | int = 0, timeout: float = DEFAULT_TIMEOUT) -> None:
    await _request_ack(session, command(FSCommand.OPEN, FSOpenPacket(flags=int(flags), path=path)), "open", timeout)


async def close_file(session: Session, timeout: float = DEFAULT_TIMEOUT) -> None:
    await _request_ack(session, command(FSCommand.CLOSE), "close", timeout)


async def read_file_range(
    session: Session,
    path: str,
    offset: int,
    length: int,
    report: ProgressCallback | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> bytes:
    """Read *length* bytes of *path* starting at *offset*."""
    await open_file(session, path, 0, timeout)
    await session.send(Endpoint.FS, command(FSCommand.READ, RangePacket(offset=offset, length=length)))

    stream = OffsetStream(offset, length, report)
    while True:
        reply = await _receive(session, True, timeout)
        if reply is ACK:
            break
        chunk = ChunkPacket.decode(_tagged(reply, FSReply.CHUNK, 5))
        stream.feed(chunk.offset, chunk.data)

    await close_file(session, timeout)
    return stream.result()


async def read_file(
    session: Session,
    path: str,
    report: ProgressCallback | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> bytes:
    """Read the whole file in ranges; *report* receives the running total."""
    info = await stat_path(session, path, timeout)

    data = bytearray()
    while len(data) < info.size:
        start = len(data)
        length = min(FS_READ_RANGE, info.size - start)

        def progress(position: int, start: int = start) -> None:
            if report is not None:
                report(start + position)

        chunk = await read_file_range(session, path, start, length, progress, timeout)
        if not chunk:
            raise ProtocolViolation(f"file ended early at {start} of {info.size} bytes")
        data += chunk

    return bytes(data)


async def write_file(
    session: Session,
    path: str,
    data: bytes,
    report: ProgressCallback | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> None:
    """Create or truncate *path* and write *data* to it."""
    await open_file(session, path, FSOpenFlag.CREATE | FSOpenFlag.TRUNCATE, timeout)

    mtu = await session.get_mtu(timeout)

    async def send_chunk(index: int, offset: int, chunk: bytes, acked: bool) -> None:
        mode = 0 if acked else FSWriteFlag.SILENT | FSWriteFlag.SEQUENTIAL
        packet = FSWritePacket(mode=int(mode), offset=offset, data=chunk)
        await session.send(Endpoint.FS, command(FSCommand.WRITE, packet))
        if acked:
            reply = await _receive(session, True, timeout)
            if reply is not ACK:
                raise ProtocolViolation(f"expected ack for chunk {index}")

    chunks = await windowed_write(
        bytes(data),
        chunk_size=mtu - FS_WRITE_OVERHEAD,
        width=session.channel.width(),
        send_chunk=send_chunk,
        report=report,
    )

    await close_file(session, timeout)
    logger.debug("Wrote %d bytes to %s in %d chunks", len(data), path, chunks)


async def rename_path(session: Session, source: str, target: str, timeout: float = DEFAULT_TIMEOUT) -> None:
    await _request_ack(session, command(FSCommand.RENAME, FSRenamePacket(source=source, target=target)), "rename", timeout)


async def remove_path(session: Session, path: str, timeout: float = DEFAULT_TIMEOUT) -> None:
    await _request_ack(session, command(FSCommand.REMOVE, NamePacket(name=path)), "remove", timeout)


async def sha256_file(session: Session, path: str, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Return the SHA-256 digest of *path* as computed by the device."""
    await session.send(Endpoint.FS, command(FSCommand.SHA256, NamePacket(name=path)))
    reply = await _receive(session, False, timeout)
    body = _tagged(reply, FSReply.SHA256, 1 + SHA256_LENGTH)
    return DigestPacket.decode(body).digest


async def make_dir(session: Session, path: str, timeout: float = DEFAULT_TIMEOUT) -> None:
    await _request_ack(session, command(FSCommand.MKDIR, NamePacket(name=path)), "mkdir", timeout)


__all__ = [
    "FSInfo",
    "close_file",
    "list_dir",
    "make_dir",
    "open_file",
    "read_file",
    "read_file_range",
    "remove_path",
    "rename_path",
    "sha256_file",
    "stat_path",
    "write_file",
]
