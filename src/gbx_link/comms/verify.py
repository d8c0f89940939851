"""
RAM Write Verification
======================

Read-after-write check for cartridge RAM restores. This is the only
self-verifying path in the protocol.

Protocol Flow
-------------
```
HOST                                   DEVICE
  | ── WRITE_RAM request ───────────→   |   REQUESTED_WRITE
  | ── RAM image, 32-byte chunks ───→   |   SENT
  |                                     |
  | ── READ_RAM request ────────────→   |   VERIFYING
  | ←─ DLE STX <len> <RAM image> ─────  |
  |                                     |
  compare with source ─> MATCH | MISMATCH | INCONCLUSIVE
```

A read-back whose declared length differs from the written length, or
that fails to arrive, is INCONCLUSIVE: the write may well be fine and the
user should simply try again. MISMATCH means the device really returned
different bytes; it is reported as a warning, not raised.
"""

import logging
import time
from enum import Enum
from typing import BinaryIO, Optional

from gbx_link.comms.framing import Command, receive_header, write_request
from gbx_link.comms.transfer import ProgressCallback, receive_into_buffer
from gbx_link.comms.transport import CancelToken, Clock, Sleep, Transport
from gbx_link.config import LinkConfig
from gbx_link.errors import CancelledError, CommsError

# Configure module logger
logger = logging.getLogger(__name__)


class VerifyState(Enum):
    """States of a verified RAM write."""

    REQUESTED_WRITE = "requested_write"
    SENT = "sent"
    VERIFYING = "verifying"
    MATCH = "match"
    MISMATCH = "mismatch"
    INCONCLUSIVE = "inconclusive"


class VerifyResult(Enum):
    """Outcome of a read-back comparison."""

    MATCH = "match"
    MISMATCH = "mismatch"
    INCONCLUSIVE = "inconclusive"

    @property
    def state(self) -> VerifyState:
        return VerifyState(self.value)

    def describe(self) -> str:
        """Message shown to the user."""
        return {
            VerifyResult.MATCH: "RAM OK!",
            VerifyResult.MISMATCH: "RAM NOK (possibly corrupted)!",
            VerifyResult.INCONCLUSIVE: "Error with RAM, try again",
        }[self]


def compare_images(expected: bytes, actual: bytes) -> Optional[int]:
    """
    Compare two images byte for byte.

    Returns:
        Offset of the first difference, or None if identical. A length
        difference counts as a difference at the shorter length.
    """
    if expected == actual:
        return None
    for offset, (a, b) in enumerate(zip(expected, actual)):
        if a != b:
            return offset
    return min(len(expected), len(actual))


def verify_write(
    transport: Transport,
    source: BinaryIO,
    length: int,
    report_progress: Optional[ProgressCallback] = None,
    *,
    cancel: Optional[CancelToken] = None,
    config: Optional[LinkConfig] = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> VerifyResult:
    """
    Read the cartridge RAM back and compare it with `source`.

    The source is re-read from offset 0.

    Args:
        transport: Link to the device.
        source: Seekable image that was just written.
        length: Number of bytes that were written.
        report_progress: Optional (total, remaining) callback for the read-back.

    Returns:
        VerifyResult.MATCH, MISMATCH or INCONCLUSIVE.

    Raises:
        CancelledError: If cancellation is requested. Cancellation is a
            user decision, not an inconclusive result.
    """
    config = config or LinkConfig()
    logger.info("Verifying %d bytes of RAM", length)

    transport.discard()

    try:
        write_request(transport, Command.READ_RAM)
        sleep(config.request_settle_delay)
        declared = receive_header(transport, config, cancel, clock, sleep)
    except CancelledError:
        raise
    except CommsError as e:
        logger.warning("Verification read-back failed: %s", e)
        return VerifyResult.INCONCLUSIVE

    if declared != length:
        logger.warning(
            "Verification read-back length %d does not match written length %d",
            declared, length
        )
        return VerifyResult.INCONCLUSIVE

    read_back = bytearray(length)
    try:
        receive_into_buffer(
            transport, length, read_back, length, report_progress,
            cancel=cancel, config=config, clock=clock, sleep=sleep,
        )
    except CancelledError:
        raise
    except CommsError as e:
        logger.warning("Verification read-back failed: %s", e)
        return VerifyResult.INCONCLUSIVE

    source.seek(0)
    original = source.read(length)

    offset = compare_images(original, bytes(read_back))
    if offset is None:
        logger.info("Verification passed")
        return VerifyResult.MATCH

    logger.warning("RAM differs from source starting at offset 0x%X", offset)
    return VerifyResult.MISMATCH
