"""Typed packets for the sub-protocol payloads.

Each packet pairs a ``construct`` schema (the wire layout) with a frozen
``msgspec.Struct`` (the typed value). Command bytes are not part of the
schemas; :func:`command` prepends them.
"""

from __future__ import annotations

from typing import Any, ClassVar, Type, TypeVar

import msgspec
from construct import (  # type: ignore
    Bytes,
    Construct,
    ConstructError,
    CString,
    GreedyBytes,
    GreedyString,
    Int8ul,
    Int32ul,
    Int64ul,
    Struct as BinStruct,
)

from ..errors import ProtocolViolation
from . import protocol

T = TypeVar("T", bound="BaseStruct")


class BaseStruct(msgspec.Struct, frozen=True):
    """Base class for hybrid msgspec/construct structures."""

    # Subclasses must define this schema
    _SCHEMA: ClassVar[Construct]
    # Fields converted to enum members after parsing
    _ENUMS: ClassVar[dict[str, type]] = {}

    @classmethod
    def decode(cls: Type[T], data: bytes | bytearray | memoryview) -> T:
        """Decode binary data into a typed struct."""
        try:
            container: Any = cls._SCHEMA.parse(bytes(data))
        except (ConstructError, UnicodeDecodeError) as exc:
            raise ProtocolViolation(f"malformed {cls.__name__}: {exc}") from exc

        values = {k: v for k, v in container.items() if not k.startswith("_")}
        for name, enum_cls in cls._ENUMS.items():
            try:
                values[name] = enum_cls(values[name])
            except ValueError as exc:
                raise ProtocolViolation(f"invalid {name} {values[name]} in {cls.__name__}") from exc
        return cls(**values)

    def encode(self) -> bytes:
        """Encode the typed struct into binary data."""
        return self._SCHEMA.build(msgspec.structs.asdict(self))


def command(code: int, packet: BaseStruct | None = None) -> bytes:
    """Prefix an encoded packet with its command byte."""
    body = packet.encode() if packet is not None else b""
    return protocol.UINT8_STRUCT.build(code) + body


# --- Requests ---


class NamePacket(BaseStruct, frozen=True):
    name: str

    _SCHEMA = BinStruct("name" / GreedyString("utf8"))


class PasswordPacket(BaseStruct, frozen=True):
    password: str

    _SCHEMA = BinStruct("password" / GreedyString("utf8"))


class RefPacket(BaseStruct, frozen=True):
    ref: int

    _SCHEMA = BinStruct("ref" / Int8ul)


class ParamSetPacket(BaseStruct, frozen=True):
    name: str
    value: bytes

    _SCHEMA = BinStruct("name" / CString("utf8"), "value" / GreedyBytes)


class ParamWritePacket(BaseStruct, frozen=True):
    ref: int
    value: bytes

    _SCHEMA = BinStruct("ref" / Int8ul, "value" / GreedyBytes)


class ParamCollectPacket(BaseStruct, frozen=True):
    refs: int
    since: int

    _SCHEMA = BinStruct("refs" / Int64ul, "since" / Int64ul)


class RangePacket(BaseStruct, frozen=True):
    offset: int
    length: int

    _SCHEMA = BinStruct("offset" / Int32ul, "length" / Int32ul)


class FSOpenPacket(BaseStruct, frozen=True):
    flags: int
    path: str

    _SCHEMA = BinStruct("flags" / Int8ul, "path" / GreedyString("utf8"))


class FSWritePacket(BaseStruct, frozen=True):
    mode: int
    offset: int
    data: bytes

    _SCHEMA = BinStruct("mode" / Int8ul, "offset" / Int32ul, "data" / GreedyBytes)


class FSRenamePacket(BaseStruct, frozen=True):
    source: str
    target: str

    _SCHEMA = BinStruct("source" / CString("utf8"), "target" / GreedyString("utf8"))


class UpdateBeginPacket(BaseStruct, frozen=True):
    size: int

    _SCHEMA = BinStruct("size" / Int32ul)


class UpdateWritePacket(BaseStruct, frozen=True):
    acked: int
    data: bytes

    _SCHEMA = BinStruct("acked" / Int8ul, "data" / GreedyBytes)


# --- Replies ---


class ParamInfo(BaseStruct, frozen=True):
    """A parameter declared by the device."""

    ref: int
    type: protocol.ParamType
    mode: protocol.ParamMode
    name: str

    _SCHEMA = BinStruct("ref" / Int8ul, "type" / Int8ul, "mode" / Int8ul, "name" / GreedyString("utf8"))
    _ENUMS = {"type": protocol.ParamType, "mode": protocol.ParamMode}


class ParamUpdate(BaseStruct, frozen=True):
    """A parameter value with its device-side age."""

    ref: int
    age: int
    value: bytes

    _SCHEMA = BinStruct("ref" / Int8ul, "age" / Int64ul, "value" / GreedyBytes)


class MetricInfo(BaseStruct, frozen=True):
    """A metric declared by the device; ``size`` counts elements per sample."""

    ref: int
    kind: protocol.MetricKind
    type: protocol.MetricType
    size: int
    name: str

    _SCHEMA = BinStruct(
        "ref" / Int8ul,
        "kind" / Int8ul,
        "type" / Int8ul,
        "size" / Int8ul,
        "name" / GreedyString("utf8"),
    )
    _ENUMS = {"kind": protocol.MetricKind, "type": protocol.MetricType}


class MetricKeyPacket(BaseStruct, frozen=True):
    num: int
    name: str

    _SCHEMA = BinStruct("num" / Int8ul, "name" / GreedyString("utf8"))


class MetricValuePacket(BaseStruct, frozen=True):
    key: int
    num: int
    name: str

    _SCHEMA = BinStruct("key" / Int8ul, "num" / Int8ul, "name" / GreedyString("utf8"))


class FSInfoPacket(BaseStruct, frozen=True):
    is_dir: int
    size: int
    name: str

    _SCHEMA = BinStruct("is_dir" / Int8ul, "size" / Int32ul, "name" / GreedyString("utf8"))


class ChunkPacket(BaseStruct, frozen=True):
    offset: int
    data: bytes

    _SCHEMA = BinStruct("offset" / Int32ul, "data" / GreedyBytes)


class DigestPacket(BaseStruct, frozen=True):
    digest: bytes

    _SCHEMA = BinStruct("digest" / Bytes(protocol.SHA256_LENGTH))


class CoredumpInfo(BaseStruct, frozen=True):
    """Size and reason of the stored crash snapshot."""

    size: int
    reason: str

    _SCHEMA = BinStruct("size" / Int32ul, "reason" / GreedyString("utf8"))


__all__ = [
    "BaseStruct",
    "ChunkPacket",
    "CoredumpInfo",
    "DigestPacket",
    "FSInfoPacket",
    "FSOpenPacket",
    "FSRenamePacket",
    "FSWritePacket",
    "MetricInfo",
    "MetricKeyPacket",
    "MetricValuePacket",
    "NamePacket",
    "ParamCollectPacket",
    "ParamInfo",
    "ParamSetPacket",
    "ParamUpdate",
    "ParamWritePacket",
    "PasswordPacket",
    "RangePacket",
    "RefPacket",
    "UpdateBeginPacket",
    "UpdateWritePacket",
    "command",
]
