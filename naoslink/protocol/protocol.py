"""Wire constants, command vocabularies and binary layouts.

Every multi-byte integer on the wire is little-endian. Command and reply
bytes are modelled as ``IntEnum`` members so each sub-protocol decodes a tag
once and matches on the enum.
"""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Final

from construct import (  # type: ignore
    Float32l,
    Float64l,
    GreedyBytes,
    GreedyRange,
    Int8ul,
    Int16ul,
    Int32sl,
    Int32ul,
    Int64ul,
    Struct as BinStruct,
)

PROTOCOL_VERSION: Final[int] = 1
HANDLE_LENGTH: Final[int] = 16
SHA256_LENGTH: Final[int] = 32

FRAME_STRUCT = BinStruct(
    "version" / Int8ul,
    "session" / Int16ul,
    "endpoint" / Int8ul,
    "payload" / GreedyBytes,
)
FRAME_HEADER_SIZE: Final[int] = 4

UINT8_STRUCT = Int8ul
UINT16_STRUCT = Int16ul
UINT32_STRUCT = Int32ul
UINT64_STRUCT = Int64ul


class Endpoint(IntEnum):
    HANDSHAKE = 0x00
    PARAMS = 0x01
    UPDATE = 0x02
    FS = 0x03
    METRICS = 0x05
    DEBUG = 0x07
    SYSTEM = 0xFD
    CONTROL = 0xFE
    END = 0xFF


RESERVED_ENDPOINTS: Final[frozenset[int]] = frozenset({Endpoint.HANDSHAKE, Endpoint.CONTROL, Endpoint.END})


class ControlCode(IntEnum):
    """Single-byte replies on the control endpoint."""

    ACK = 1
    INVALID = 2
    UNKNOWN = 3
    ERROR = 4
    LOCKED = 5


# --- System endpoint ---


class SystemCommand(IntEnum):
    STATUS = 0
    UNLOCK = 1
    GET_MTU = 2


class SessionStatus(IntFlag):
    LOCKED = 1


# --- Params endpoint ---


class ParamsCommand(IntEnum):
    GET = 0
    SET = 1
    LIST = 2
    READ = 3
    WRITE = 4
    COLLECT = 5
    CLEAR = 6


class ParamType(IntEnum):
    RAW = 0
    STRING = 1
    BOOL = 2
    LONG = 3
    DOUBLE = 4
    ACTION = 5


class ParamMode(IntFlag):
    VOLATILE = 1
    SYSTEM = 2
    APPLICATION = 4
    LOCKED = 16


PARAM_MODE_MASK: Final[int] = int(ParamMode.VOLATILE | ParamMode.SYSTEM | ParamMode.APPLICATION | ParamMode.LOCKED)
COLLECT_MAX_REFS: Final[int] = 64


# --- Update endpoint ---


class UpdateCommand(IntEnum):
    BEGIN = 0
    WRITE = 1
    FINISH = 3


class UpdateReply(IntEnum):
    BEGUN = 0
    FINISHED = 1


UPDATE_WRITE_OVERHEAD: Final[int] = 2
UPDATE_ACK_INTERVAL: Final[int] = 10


# --- Filesystem endpoint ---


class FSCommand(IntEnum):
    STAT = 0
    LIST = 1
    OPEN = 2
    READ = 3
    WRITE = 4
    CLOSE = 5
    RENAME = 6
    REMOVE = 7
    SHA256 = 8
    MKDIR = 9


class FSReply(IntEnum):
    ERROR = 0
    INFO = 1
    CHUNK = 2
    SHA256 = 3


class FSOpenFlag(IntFlag):
    CREATE = 1
    APPEND = 2
    TRUNCATE = 4
    EXCLUSIVE = 8


class FSWriteFlag(IntFlag):
    SILENT = 1
    SEQUENTIAL = 2


FS_WRITE_OVERHEAD: Final[int] = 6
FS_READ_RANGE: Final[int] = 5000
FS_INFO_SIZE: Final[int] = 5


# --- Metrics endpoint ---


class MetricsCommand(IntEnum):
    LIST = 0
    DESCRIBE = 1
    READ = 2


class MetricKind(IntEnum):
    COUNTER = 0
    GAUGE = 1


class MetricType(IntEnum):
    LONG = 0
    FLOAT = 1
    DOUBLE = 2


class MetricLayoutReply(IntEnum):
    KEY = 0
    VALUE = 1


METRIC_ELEMENT_STRUCTS = {
    MetricType.LONG: Int32sl,
    MetricType.FLOAT: Float32l,
    MetricType.DOUBLE: Float64l,
}
METRIC_SAMPLE_STRUCTS = {kind: GreedyRange(element) for kind, element in METRIC_ELEMENT_STRUCTS.items()}


# --- Debug endpoint ---


class DebugCommand(IntEnum):
    CHECK = 0
    READ = 1
    DELETE = 2
    LOG_START = 3
    LOG_STOP = 4


__all__ = [
    "COLLECT_MAX_REFS",
    "ControlCode",
    "DebugCommand",
    "Endpoint",
    "FRAME_HEADER_SIZE",
    "FRAME_STRUCT",
    "FSCommand",
    "FSOpenFlag",
    "FSReply",
    "FSWriteFlag",
    "FS_INFO_SIZE",
    "FS_READ_RANGE",
    "FS_WRITE_OVERHEAD",
    "HANDLE_LENGTH",
    "METRIC_ELEMENT_STRUCTS",
    "METRIC_SAMPLE_STRUCTS",
    "MetricKind",
    "MetricLayoutReply",
    "MetricType",
    "MetricsCommand",
    "PARAM_MODE_MASK",
    "PROTOCOL_VERSION",
    "ParamMode",
    "ParamType",
    "ParamsCommand",
    "RESERVED_ENDPOINTS",
    "SHA256_LENGTH",
    "SessionStatus",
    "SystemCommand",
    "UINT16_STRUCT",
    "UINT32_STRUCT",
    "UINT64_STRUCT",
    "UINT8_STRUCT",
    "UPDATE_ACK_INTERVAL",
    "UPDATE_WRITE_OVERHEAD",
    "UpdateCommand",
    "UpdateReply",
]
