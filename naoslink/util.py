"""Small helpers shared by the session and transports."""

from __future__ import annotations

import logging

__all__ = [
    "chunk_bytes",
    "log_hexdump",
]


def chunk_bytes(data: bytes, size: int) -> list[bytes]:
    """Cut *data* into *size*-byte pieces; the tail may be shorter."""
    if size <= 0:
        raise ValueError("chunk_size must be positive")
    view = memoryview(data)
    return [bytes(view[offset : offset + size]) for offset in range(0, len(view), size)]


def log_hexdump(
    logger: logging.Logger,
    level: int,
    label: str,
    data: bytes,
    *,
    session: int | None = None,
) -> None:
    """Log *data* as spaced hex after *label* and, for frames, the session id."""
    if not logger.isEnabledFor(level):
        return
    if session is not None:
        label = f"{label} session={session}"
    logger.log(level, "%s (%d bytes): %s", label, len(data), bytes(data).hex(" ").upper())
