"""Unit tests for frame building and parsing."""

from __future__ import annotations

import pytest

from naoslink.errors import FramingError, ProtocolViolation
from naoslink.protocol import protocol
from naoslink.protocol.frame import Frame
from naoslink.protocol.protocol import Endpoint, ParamMode, ParamType
from naoslink.protocol.structures import (
    FSRenamePacket,
    MetricInfo,
    ParamInfo,
    ParamSetPacket,
    RangePacket,
    command,
)


def test_build_layout() -> None:
    raw = Frame.build(0x1234, Endpoint.PARAMS, b"\xAA\xBB")

    assert raw == bytes([protocol.PROTOCOL_VERSION, 0x34, 0x12, 0x01, 0xAA, 0xBB])


def test_build_without_payload_is_header_only() -> None:
    raw = Frame.build(7, Endpoint.END)

    assert len(raw) == protocol.FRAME_HEADER_SIZE
    assert Frame.from_bytes(raw) == Frame(session=7, endpoint=Endpoint.END)


def test_parse_preserves_fields() -> None:
    frame = Frame(session=65535, endpoint=0xFD, payload=b"\x02")

    assert Frame.from_bytes(frame.to_bytes()) == frame


@pytest.mark.parametrize("raw", [b"", b"\x01", b"\x01\x00\x00"])
def test_parse_rejects_short_buffers(raw: bytes) -> None:
    with pytest.raises(FramingError, match="Incomplete frame"):
        Frame.parse(raw)


def test_parse_rejects_unknown_version() -> None:
    with pytest.raises(FramingError, match="Invalid version"):
        Frame.parse(b"\x02\x01\x00\x01payload")


@pytest.mark.parametrize(
    ("session", "endpoint"),
    [(-1, 0), (0x10000, 0), (0, 256), (0, -1)],
)
def test_build_rejects_out_of_range_header(session: int, endpoint: int) -> None:
    with pytest.raises(ValueError):
        Frame.build(session, endpoint)


def test_command_prefixes_code() -> None:
    assert command(2) == b"\x02"
    assert command(3, RangePacket(offset=1, length=2)) == b"\x03" + b"\x01\x00\x00\x00\x02\x00\x00\x00"


def test_cstring_packets_are_nul_separated() -> None:
    assert ParamSetPacket(name="foo", value=b"bar").encode() == b"foo\x00bar"
    assert FSRenamePacket(source="/a", target="/b").encode() == b"/a\x00/b"


def test_param_info_decodes_enums() -> None:
    info = ParamInfo.decode(b"\x03\x01\x06wifi")

    assert info.ref == 3
    assert info.type is ParamType.STRING
    assert info.mode == ParamMode.SYSTEM | ParamMode.APPLICATION
    assert info.name == "wifi"


def test_metric_info_rejects_unknown_type() -> None:
    with pytest.raises(ProtocolViolation, match="invalid type"):
        MetricInfo.decode(b"\x00\x00\x09\x01name")


def test_decode_truncated_packet_raises_protocol_violation() -> None:
    with pytest.raises(ProtocolViolation, match="malformed RangePacket"):
        RangePacket.decode(b"\x01\x02")
