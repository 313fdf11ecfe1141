"""Tests for settings loading and logging configuration."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from naoslink.config import LinkConfig, StructuredLogFormatter, configure_logging, load_config
from naoslink.config import logging as logging_config
from naoslink.const import DEFAULT_QUEUE_CAPACITY, DEFAULT_TIMEOUT
from naoslink.util import log_hexdump


def test_defaults_without_input() -> None:
    config = load_config(environ={})

    assert config == LinkConfig()
    assert config.timeout == DEFAULT_TIMEOUT
    assert config.queue_capacity == DEFAULT_QUEUE_CAPACITY


def test_mapping_and_environment_merge() -> None:
    config = load_config(
        {"parallelism": 4, "mqtt_host": "broker.local", "mqtt_port": 1884},
        environ={
            "NAOSLINK_MQTT_PORT": "8883",
            "NAOSLINK_DEBUG_LOGGING": "true",
            "NAOSLINK_UNKNOWN": "ignored",
            "PATH": "/usr/bin",
        },
    )

    assert config.parallelism == 4
    assert config.mqtt_host == "broker.local"
    assert config.mqtt_port == 8883
    assert config.debug_logging is True


def test_base_topic_is_normalised() -> None:
    config = load_config({"mqtt_base_topic": "/site//lamp/"}, environ={})

    assert config.mqtt_base_topic == "site/lamp"


@pytest.mark.parametrize(
    "mapping",
    [
        {"timeout": 0},
        {"queue_capacity": 0},
        {"mqtt_qos": 3},
        {"mqtt_port": 70000},
        {"mqtt_base_topic": "///"},
        {"parallelism": "many"},
    ],
)
def test_invalid_values_raise_value_error(mapping: dict[str, object]) -> None:
    with pytest.raises(ValueError, match="invalid configuration"):
        load_config(mapping, environ={})


def test_formatter_emits_json_with_extras() -> None:
    formatter = StructuredLogFormatter()
    record = logging.LogRecord(
        name="naoslink.session",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="opened %d",
        args=(3,),
        exc_info=None,
    )
    record.frame = b"\x01\xAB"
    record.device = "mqtt/lamp"

    payload = json.loads(formatter.format(record))

    assert payload["logger"] == "session"
    assert payload["level"] == "INFO"
    assert payload["message"] == "opened 3"
    assert payload["ts"].endswith("Z")
    assert payload["extra"] == {"frame": "[01 AB]", "device": "mqtt/lamp"}


def test_formatter_includes_exception() -> None:
    formatter = StructuredLogFormatter()
    try:
        raise RuntimeError("broken")
    except RuntimeError:
        exc_info = sys.exc_info()
    record = logging.LogRecord("other", logging.ERROR, __file__, 1, "failed", (), exc_info)

    payload = json.loads(formatter.format(record))

    assert payload["logger"] == "other"
    assert "RuntimeError: broken" in payload["exception"]


def test_configure_logging_sets_level_and_formatter() -> None:
    configure_logging(LinkConfig(debug_logging=True))

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(handler.formatter, StructuredLogFormatter) for handler in root.handlers)

    configure_logging(LinkConfig())
    assert logging.getLogger().level == logging.INFO


def test_syslog_falls_back_to_stream(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setattr(logging_config, "SYSLOG_SOCKETS", (tmp_path / "missing",))

    handler = logging_config._build_handler(use_syslog=True)

    assert isinstance(handler, logging.StreamHandler)


def test_log_hexdump_only_when_enabled(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("naoslink.test")

    with caplog.at_level(logging.INFO, logger="naoslink.test"):
        log_hexdump(logger, logging.DEBUG, "skipped", b"\x00")
        log_hexdump(logger, logging.INFO, "TX", b"\x01\xab", session=1)
        log_hexdump(logger, logging.INFO, "Corrupt serial line", b"NAOS!")

    assert caplog.messages == [
        "TX session=1 (2 bytes): 01 AB",
        "Corrupt serial line (5 bytes): 4E 41 4F 53 21",
    ]
