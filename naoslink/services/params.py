"""Parameter store sub-protocol and the caching ParamsService."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence

from ..const import DEFAULT_SERVICE_TIMEOUT, DEFAULT_TIMEOUT
from ..errors import NotFoundError, ProtocolViolation
from ..protocol.protocol import COLLECT_MAX_REFS, PARAM_MODE_MASK, Endpoint, ParamsCommand
from ..protocol.structures import (
    NamePacket,
    ParamCollectPacket,
    ParamInfo,
    ParamSetPacket,
    ParamUpdate,
    ParamWritePacket,
    RefPacket,
    command,
)
from ..session import Session
from .transfer import iter_until_ack

logger = logging.getLogger("naoslink.service.params")

_INFO_MIN_SIZE = 4
_UPDATE_MIN_SIZE = 9


async def get_param(session: Session, name: str, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Return the value of the named parameter."""
    await session.send(Endpoint.PARAMS, command(ParamsCommand.GET, NamePacket(name=name)))
    return await session.receive(Endpoint.PARAMS, timeout=timeout)


async def set_param(session: Session, name: str, value: bytes, timeout: float = DEFAULT_TIMEOUT) -> None:
    """Set the named parameter."""
    packet = ParamSetPacket(name=name, value=bytes(value))
    await session.send(Endpoint.PARAMS, command(ParamsCommand.SET, packet), timeout)


async def list_params(session: Session, timeout: float = DEFAULT_TIMEOUT) -> list[ParamInfo]:
    """Return every parameter declared by the device."""
    await session.send(Endpoint.PARAMS, command(ParamsCommand.LIST))

    infos: list[ParamInfo] = []
    async for reply in iter_until_ack(session, Endpoint.PARAMS, timeout):
        if len(reply) < _INFO_MIN_SIZE:
            raise ProtocolViolation("invalid param info reply")
        info = ParamInfo.decode(reply)
        if int(info.mode) & ~PARAM_MODE_MASK:
            raise ProtocolViolation(f"invalid param mode {int(info.mode)}")
        infos.append(info)

    return infos


async def read_param(session: Session, ref: int, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Return the value of the referenced parameter."""
    await session.send(Endpoint.PARAMS, command(ParamsCommand.READ, RefPacket(ref=ref)))
    return await session.receive(Endpoint.PARAMS, timeout=timeout)


async def write_param(session: Session, ref: int, value: bytes, timeout: float = DEFAULT_TIMEOUT) -> None:
    """Write the referenced parameter."""
    packet = ParamWritePacket(ref=ref, value=bytes(value))
    await session.send(Endpoint.PARAMS, command(ParamsCommand.WRITE, packet), timeout)


def refs_bitmap(refs: Iterable[int]) -> int:
    bitmap = 0
    for ref in refs:
        if not 0 <= ref < COLLECT_MAX_REFS:
            raise ValueError(f"param ref {ref} cannot be collected")
        bitmap |= 1 << ref
    return bitmap


async def collect_params(
    session: Session,
    refs: Iterable[int],
    since: int = 0,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[ParamUpdate]:
    """Return values of *refs* that changed after age *since*."""
    packet = ParamCollectPacket(refs=refs_bitmap(refs), since=since)
    await session.send(Endpoint.PARAMS, command(ParamsCommand.COLLECT, packet))

    updates: list[ParamUpdate] = []
    async for reply in iter_until_ack(session, Endpoint.PARAMS, timeout):
        if len(reply) < _UPDATE_MIN_SIZE:
            raise ProtocolViolation("invalid param update reply")
        updates.append(ParamUpdate.decode(reply))

    return updates


async def clear_param(session: Session, ref: int, timeout: float = DEFAULT_TIMEOUT) -> None:
    """Clear the value of the referenced parameter."""
    await session.send(Endpoint.PARAMS, command(ParamsCommand.CLEAR, RefPacket(ref=ref)), timeout)


class ParamsService:
    """Caches parameter declarations and values for one session.

    :meth:`list` must run before the name-based methods; by default it also
    fills the value cache so :meth:`read` can answer locally. :meth:`collect`
    only asks for values newer than the newest cached age of the requested
    parameters, or for everything if any of them has no cached value.
    """

    def __init__(self, session: Session, timeout: float = DEFAULT_SERVICE_TIMEOUT) -> None:
        self.session = session
        self.timeout = timeout
        self._infos: list[ParamInfo] = []
        self._by_name: dict[str, ParamInfo] = {}
        self._by_ref: dict[int, ParamInfo] = {}
        self._updates: dict[int, ParamUpdate] = {}

    async def list(self, prefetch: bool = True) -> list[ParamInfo]:
        """Index the declared parameters and, with *prefetch*, their values."""
        infos = await list_params(self.session, self.timeout)
        previous = self._by_ref
        self._infos = infos
        self._by_name = {info.name: info for info in infos}
        self._by_ref = {info.ref: info for info in infos}
        # Cached values only survive for refs that still name the same parameter.
        self._updates = {
            ref: update
            for ref, update in self._updates.items()
            if ref in self._by_ref and ref in previous and previous[ref].name == self._by_ref[ref].name
        }
        if prefetch and infos:
            await self.collect()
        return infos

    def has(self, name: str) -> bool:
        return name in self._by_name

    def get(self, name: str) -> ParamInfo | None:
        return self._by_name.get(name)

    def by_ref(self, ref: int) -> ParamInfo | None:
        return self._by_ref.get(ref)

    def all(self) -> Iterator[tuple[ParamInfo, ParamUpdate | None]]:
        """Yield each declared parameter with its cached value, if any."""
        for info in self._infos:
            yield info, self._updates.get(info.ref)

    def update(self, name: str) -> ParamUpdate | None:
        info = self._lookup(name)
        return self._updates.get(info.ref)

    def _lookup(self, name: str) -> ParamInfo:
        info = self._by_name.get(name)
        if info is None:
            raise NotFoundError(f"param {name!r} not found")
        return info

    def _refs(self, names: Sequence[str]) -> list[int]:
        if names:
            return [self._lookup(name).ref for name in names]
        return [info.ref for info in self._infos]

    async def collect(self, *names: str) -> list[ParamUpdate]:
        """Refresh cached values; return the updates the device sent."""
        refs = self._refs(names)

        since = 0
        for ref in refs:
            cached = self._updates.get(ref)
            if cached is None:
                since = 0
                break
            since = max(since, cached.age)

        updates = await collect_params(self.session, refs, since, self.timeout)
        for update in updates:
            self._updates[update.ref] = update

        logger.debug("Collected %d of %d params since age %d", len(updates), len(refs), since)
        return updates

    async def read(self, name: str, reload: bool = False) -> bytes:
        """Return the cached value of *name*, fetching it first if *reload*."""
        info = self._lookup(name)

        if reload:
            updates = await collect_params(self.session, [info.ref], 0, self.timeout)
            if not updates:
                raise NotFoundError(f"param {name!r} has no value")
            self._updates[info.ref] = updates[0]

        cached = self._updates.get(info.ref)
        if cached is None:
            raise NotFoundError(f"param {name!r} has no value")
        return cached.value

    async def write(self, name: str, value: bytes) -> None:
        info = self._lookup(name)
        await write_param(self.session, info.ref, value, self.timeout)

    async def clear(self, name: str) -> None:
        info = self._lookup(name)
        await clear_param(self.session, info.ref, self.timeout)
        self._updates.pop(info.ref, None)


__all__ = [
    "ParamsService",
    "clear_param",
    "collect_params",
    "get_param",
    "list_params",
    "read_param",
    "refs_bitmap",
    "set_param",
    "write_param",
]
