"""Settings loader for naoslink.

Values are merged from built-in defaults, an optional mapping supplied by the
caller and ``NAOSLINK_*`` environment variables (highest priority), then
validated by :class:`LinkConfigSchema`.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict

from marshmallow import Schema, ValidationError, fields, post_load, pre_load, validate

from ..const import (
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_LOG_IDLE_TIMEOUT,
    DEFAULT_LOG_SYSLOG,
    DEFAULT_MQTT_BASE_TOPIC,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_QOS,
    DEFAULT_PARALLELISM,
    DEFAULT_PING_INTERVAL,
    DEFAULT_QUEUE_CAPACITY,
    DEFAULT_SERIAL_BAUD,
    DEFAULT_SERIAL_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_UPDATE_ATTEMPTS,
    ENV_PREFIX,
)

logger = logging.getLogger("naoslink.config")


@dataclass(slots=True)
class LinkConfig:
    """Strongly typed runtime settings."""

    timeout: float = DEFAULT_TIMEOUT
    handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT
    queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    parallelism: int = DEFAULT_PARALLELISM
    ping_interval: float = DEFAULT_PING_INTERVAL
    log_idle_timeout: float = DEFAULT_LOG_IDLE_TIMEOUT
    update_attempts: int = DEFAULT_UPDATE_ATTEMPTS
    mqtt_host: str = DEFAULT_MQTT_HOST
    mqtt_port: int = DEFAULT_MQTT_PORT
    mqtt_user: str | None = None
    mqtt_pass: str | None = None
    mqtt_qos: int = DEFAULT_MQTT_QOS
    mqtt_client_id: str | None = None
    mqtt_base_topic: str = DEFAULT_MQTT_BASE_TOPIC
    serial_port: str = DEFAULT_SERIAL_PORT
    serial_baud: int = DEFAULT_SERIAL_BAUD
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    log_syslog: bool = DEFAULT_LOG_SYSLOG


class LinkConfigSchema(Schema):
    """Declarative validation schema for naoslink settings."""

    # Session
    timeout = fields.Float(load_default=DEFAULT_TIMEOUT, validate=validate.Range(min=0.01))
    handshake_timeout = fields.Float(load_default=DEFAULT_HANDSHAKE_TIMEOUT, validate=validate.Range(min=0.01))
    queue_capacity = fields.Int(load_default=DEFAULT_QUEUE_CAPACITY, validate=validate.Range(min=1))
    parallelism = fields.Int(load_default=DEFAULT_PARALLELISM, validate=validate.Range(min=1))
    ping_interval = fields.Float(load_default=DEFAULT_PING_INTERVAL, validate=validate.Range(min=0.1))
    log_idle_timeout = fields.Float(load_default=DEFAULT_LOG_IDLE_TIMEOUT, validate=validate.Range(min=1.0))
    update_attempts = fields.Int(load_default=DEFAULT_UPDATE_ATTEMPTS, validate=validate.Range(min=1))

    # MQTT
    mqtt_host = fields.Str(load_default=DEFAULT_MQTT_HOST, validate=validate.Length(min=1))
    mqtt_port = fields.Int(load_default=DEFAULT_MQTT_PORT, validate=validate.Range(min=1, max=65535))
    mqtt_user = fields.Str(load_default=None, allow_none=True)
    mqtt_pass = fields.Str(load_default=None, allow_none=True)
    mqtt_qos = fields.Int(load_default=DEFAULT_MQTT_QOS, validate=validate.OneOf([0, 1, 2]))
    mqtt_client_id = fields.Str(load_default=None, allow_none=True)
    mqtt_base_topic = fields.Str(load_default=DEFAULT_MQTT_BASE_TOPIC, validate=validate.Length(min=1))

    # Serial
    serial_port = fields.Str(load_default=DEFAULT_SERIAL_PORT, validate=validate.Length(min=1))
    serial_baud = fields.Int(load_default=DEFAULT_SERIAL_BAUD, validate=validate.Range(min=300))

    # Logging
    debug_logging = fields.Bool(load_default=DEFAULT_DEBUG_LOGGING)
    log_syslog = fields.Bool(load_default=DEFAULT_LOG_SYSLOG)

    @pre_load
    def normalize_topic(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        if "mqtt_base_topic" in data and isinstance(data["mqtt_base_topic"], str):
            segments = [segment for segment in data["mqtt_base_topic"].split("/") if segment]
            # An empty result fails the length check instead of falling back to the default.
            data["mqtt_base_topic"] = "/".join(segments)
        return data

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> LinkConfig:
        return LinkConfig(**data)


def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    known = LinkConfigSchema().fields
    overrides: dict[str, str] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX) :].lower()
        if name in known:
            overrides[name] = value
    return overrides


def load_config(mapping: Mapping[str, Any] | None = None, environ: Mapping[str, str] | None = None) -> LinkConfig:
    """Build a validated :class:`LinkConfig`.

    Raises ``ValueError`` listing every invalid field.
    """
    raw: dict[str, Any] = dict(mapping or {})
    raw.update(_env_overrides(os.environ if environ is None else environ))

    try:
        config: LinkConfig = LinkConfigSchema().load(raw)
    except ValidationError as exc:
        raise ValueError(f"invalid configuration: {exc.messages}") from exc

    logger.debug("Loaded configuration from %d settings", len(raw))
    return config


__all__ = [
    "LinkConfig",
    "LinkConfigSchema",
    "load_config",
]
