"""Sub-protocols built on top of a session."""

from . import debug, fs, metrics, params, transfer, update
from .debug import check_coredump, delete_coredump, read_coredump, stream_log
from .fs import FSInfo, list_dir, read_file, stat_path, write_file
from .metrics import MetricLayout, MetricsService
from .params import ParamsService
from .update import update_with_retries

__all__ = [
    "FSInfo",
    "MetricLayout",
    "MetricsService",
    "ParamsService",
    "check_coredump",
    "debug",
    "delete_coredump",
    "fs",
    "list_dir",
    "metrics",
    "params",
    "read_coredump",
    "read_file",
    "stat_path",
    "stream_log",
    "transfer",
    "update",
    "update_with_retries",
    "write_file",
]
