"""Firmware update sub-protocol.

An update begins with the image size, streams the image in MTU-sized chunks
(every tenth chunk acknowledged) and finishes with a status check. There is
no resume: a failed transfer is restarted from the first byte.
"""

from __future__ import annotations

import logging

import tenacity

from ..const import DEFAULT_TIMEOUT, DEFAULT_UPDATE_ATTEMPTS, DEFAULT_UPDATE_RETRY_DELAY
from ..errors import ProtocolViolation, SessionTimeout
from ..protocol.protocol import (
    UPDATE_ACK_INTERVAL,
    UPDATE_WRITE_OVERHEAD,
    Endpoint,
    UpdateCommand,
    UpdateReply,
)
from ..protocol.structures import UpdateBeginPacket, UpdateWritePacket, command
from ..session import Session
from .transfer import ProgressCallback, windowed_write

logger = logging.getLogger("naoslink.service.update")


async def _expect_status(session: Session, status: UpdateReply, timeout: float) -> None:
    reply = await session.receive(Endpoint.UPDATE, timeout=timeout)
    if len(reply) != 1 or reply[0] != status:
        raise ProtocolViolation(f"invalid update reply, expected {status.name.lower()}")


async def update(
    session: Session,
    image: bytes,
    report: ProgressCallback | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> None:
    """Flash *image*; *report* receives the number of bytes sent so far."""
    await session.send(Endpoint.UPDATE, command(UpdateCommand.BEGIN, UpdateBeginPacket(size=len(image))))
    await _expect_status(session, UpdateReply.BEGUN, timeout)

    mtu = await session.get_mtu(timeout)

    async def send_chunk(index: int, offset: int, chunk: bytes, acked: bool) -> None:
        packet = UpdateWritePacket(acked=int(acked), data=chunk)
        await session.send(Endpoint.UPDATE, command(UpdateCommand.WRITE, packet), timeout if acked else 0)

    chunks = await windowed_write(
        bytes(image),
        chunk_size=mtu - UPDATE_WRITE_OVERHEAD,
        width=UPDATE_ACK_INTERVAL,
        send_chunk=send_chunk,
        report=report,
    )

    await session.send(Endpoint.UPDATE, command(UpdateCommand.FINISH))
    await _expect_status(session, UpdateReply.FINISHED, timeout)

    logger.info("Update of %d bytes finished in %d chunks", len(image), chunks)


def _log_retry_attempt(retry_state: tenacity.RetryCallState) -> None:
    logger.warning(
        "Update attempt %d failed (%s); restarting in %.2fs",
        retry_state.attempt_number,
        retry_state.outcome.exception() if retry_state.outcome else None,
        retry_state.next_action.sleep if retry_state.next_action else 0,
    )


async def update_with_retries(
    session: Session,
    image: bytes,
    report: ProgressCallback | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    *,
    attempts: int = DEFAULT_UPDATE_ATTEMPTS,
    delay: float = DEFAULT_UPDATE_RETRY_DELAY,
) -> None:
    """Run :func:`update`, resending the whole image after a timeout or bad status."""
    retryer = tenacity.AsyncRetrying(
        stop=tenacity.stop_after_attempt(max(1, attempts)),
        wait=tenacity.wait_fixed(delay),
        retry=tenacity.retry_if_exception_type((SessionTimeout, ProtocolViolation)),
        before_sleep=_log_retry_attempt,
        reraise=True,
    )

    async for attempt in retryer:
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                # Stale acks from the failed attempt would desync the next one.
                session.flush()
            await update(session, image, report, timeout)


__all__ = [
    "update",
    "update_with_retries",
]
