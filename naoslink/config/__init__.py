"""Configuration and logging setup."""

from .logging import StructuredLogFormatter, configure_logging
from .settings import LinkConfig, LinkConfigSchema, load_config

__all__ = [
    "LinkConfig",
    "LinkConfigSchema",
    "StructuredLogFormatter",
    "configure_logging",
    "load_config",
]
