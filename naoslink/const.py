"""Shared defaults for the naoslink runtime."""

from __future__ import annotations

from typing import Final

DEFAULT_TIMEOUT: Final[float] = 5.0
DEFAULT_HANDSHAKE_TIMEOUT: Final[float] = 10.0
DEFAULT_ACK_TIMEOUT: Final[float] = 5.0
DEFAULT_SERVICE_TIMEOUT: Final[float] = 5.0

DEFAULT_QUEUE_CAPACITY: Final[int] = 64
DEFAULT_PARALLELISM: Final[int] = 10

DEFAULT_PING_INTERVAL: Final[float] = 1.0
DEFAULT_LOG_IDLE_TIMEOUT: Final[float] = 20.0
DEFAULT_LOG_POLL_INTERVAL: Final[float] = 1.0
DEFAULT_UPDATE_ATTEMPTS: Final[int] = 3
DEFAULT_UPDATE_RETRY_DELAY: Final[float] = 1.0

DEFAULT_MQTT_HOST: Final[str] = "localhost"
DEFAULT_MQTT_PORT: Final[int] = 1883
DEFAULT_MQTT_QOS: Final[int] = 0
DEFAULT_MQTT_BASE_TOPIC: Final[str] = "naos"

DEFAULT_SERIAL_PORT: Final[str] = "/dev/ttyUSB0"
DEFAULT_SERIAL_BAUD: Final[int] = 115200

DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_LOG_SYSLOG: Final[bool] = False

ENV_PREFIX: Final[str] = "NAOSLINK_"
