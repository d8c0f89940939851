"""
Bulk Transfer Engine
====================

This module moves a payload of known length between the transport and
a destination, in bounded chunks:

- `receive_into_buffer`: device -> caller-supplied bytearray (header block,
  RAM size reply, verification read-back)
- `receive_into_sink`: device -> file-like sink (ROM and RAM dumps)
- `send_from_source`: file-like source -> device (RAM restore)

Shared Contract
---------------
- Exactly the declared number of bytes is moved, or an exception is raised.
  A partial buffer or file must be treated as invalid by the caller.
- Device latency is unbounded as long as *some* bytes arrive in every
  timeout window. The deadline slides forward on every successful read;
  only a window with no bytes at all fails the transfer.
- The cancel token is polled on every iteration.
- `report_progress(total, remaining)` is called after every chunk. It is
  for display only and cannot influence the transfer.

Write Pacing
------------
The device has no way to tell the host to slow down, and it drains its
receive buffer slower than the serial line can fill it. The host therefore
sends small chunks (32 bytes by default) and pauses after each one.
Removing the pause makes the device drop bytes.
"""

import logging
import time
from typing import BinaryIO, Callable, Optional

from gbx_link.comms.transport import (
    CancelToken,
    Clock,
    Deadline,
    Sleep,
    Transport,
    is_cancelled,
)
from gbx_link.config import LinkConfig
from gbx_link.errors import (
    CancelledError,
    CapacityError,
    ShortReadError,
    ShortSourceError,
    ShortWriteError,
    SinkWriteError,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Progress Callback Type
# =============================================================================

# Type alias for progress callback: (total_bytes, bytes_remaining) -> None
ProgressCallback = Callable[[int, int], None]


# =============================================================================
# Receiving
# =============================================================================

def receive_into_buffer(
    transport: Transport,
    length: int,
    buffer: bytearray,
    capacity: Optional[int] = None,
    report_progress: Optional[ProgressCallback] = None,
    *,
    cancel: Optional[CancelToken] = None,
    config: Optional[LinkConfig] = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> int:
    """
    Receive `length` payload bytes into `buffer`.

    Args:
        transport: Source of the payload bytes.
        length: Declared payload length (from the response header).
        buffer: Destination, filled from offset 0.
        capacity: Usable size of the buffer (default: len(buffer)).
        report_progress: Optional (total, remaining) callback.
        cancel: Optional cancellation token.
        config: Link configuration (timeout, poll interval).
        clock: Monotonic clock in seconds.
        sleep: Sleep function used between empty reads.

    Returns:
        Number of bytes stored (always `length` on success).

    Raises:
        CapacityError: If the payload does not fit. Nothing past
            `capacity` is ever written.
        ShortReadError: If the device stalls for a whole timeout window.
        CancelledError: If cancellation is requested.
    """
    config = config or LinkConfig()
    if capacity is None:
        capacity = len(buffer)
    if capacity > len(buffer):
        raise ValueError(f"Capacity {capacity} larger than buffer ({len(buffer)} bytes)")
    if length > capacity:
        raise CapacityError(length, capacity)

    offset = 0
    remaining = length
    deadline = Deadline(config.timeout, clock)

    while remaining > 0:
        if is_cancelled(cancel):
            raise CancelledError(
                "Cancelled while receiving", expected=length, transferred=offset
            )

        data = transport.read(remaining)
        if not data:
            if deadline.expired:
                raise ShortReadError(length, offset)
            sleep(config.poll_interval)
            continue

        if offset + len(data) > capacity:
            raise CapacityError(
                offset + len(data), capacity,
                f"Not enough space in buffer: {offset + len(data)} > {capacity}",
            )

        buffer[offset:offset + len(data)] = data
        offset += len(data)
        remaining -= len(data)
        deadline.touch()

        if report_progress:
            report_progress(length, max(remaining, 0))

    logger.debug("Received %d bytes into buffer", offset)
    return offset


def receive_into_sink(
    transport: Transport,
    length: int,
    sink: BinaryIO,
    report_progress: Optional[ProgressCallback] = None,
    *,
    cancel: Optional[CancelToken] = None,
    config: Optional[LinkConfig] = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> int:
    """
    Stream `length` payload bytes into `sink`.

    Each chunk (at most `config.recv_chunk_size` bytes) is written to the
    sink as soon as it arrives, so the payload size is not limited by
    memory.

    Returns:
        Number of bytes written to the sink.

    Raises:
        SinkWriteError: If the sink fails or stores less than a full chunk.
        ShortReadError: If the device stalls for a whole timeout window.
        CancelledError: If cancellation is requested.
    """
    config = config or LinkConfig()

    received = 0
    deadline = Deadline(config.timeout, clock)

    while received < length:
        if is_cancelled(cancel):
            raise CancelledError(
                "Cancelled while receiving", expected=length, transferred=received
            )

        data = transport.read(min(config.recv_chunk_size, length - received))
        if not data:
            if deadline.expired:
                raise ShortReadError(length, received)
            sleep(config.sink_poll_interval)
            continue

        try:
            written = sink.write(data)
        except OSError as e:
            raise SinkWriteError(f"Error writing to output: {e}") from e
        if written is not None and written != len(data):
            raise SinkWriteError(
                f"Output accepted {written} of {len(data)} bytes at offset {received}"
            )

        received += len(data)
        deadline.touch()

        if report_progress:
            report_progress(length, max(length - received, 0))

    logger.debug("Streamed %d bytes to sink", received)
    return received


# =============================================================================
# Sending
# =============================================================================

def send_from_source(
    transport: Transport,
    source: BinaryIO,
    total_length: int,
    report_progress: Optional[ProgressCallback] = None,
    *,
    cancel: Optional[CancelToken] = None,
    config: Optional[LinkConfig] = None,
    sleep: Sleep = time.sleep,
) -> int:
    """
    Send `total_length` bytes read from `source`.

    The source is read in `config.send_chunk_size` pieces (the last piece
    may be shorter when the length is not a multiple of the chunk size).
    Every chunk is followed by a `config.send_chunk_delay` pause.

    Returns:
        Number of bytes sent (always `total_length` on success).

    Raises:
        ShortSourceError: If the source returns less than requested.
        ShortWriteError: If the transport accepts less than a chunk.
        CancelledError: If cancellation is requested.
    """
    config = config or LinkConfig()

    sent = 0
    while sent < total_length:
        if is_cancelled(cancel):
            raise CancelledError(
                "Cancelled while sending", expected=total_length, transferred=sent
            )

        wanted = min(config.send_chunk_size, total_length - sent)
        chunk = source.read(wanted)
        if len(chunk) != wanted:
            raise ShortSourceError(sent, wanted, len(chunk))

        written = transport.write(chunk)
        if written != len(chunk):
            raise ShortWriteError(total_length, sent + max(written or 0, 0))

        sent += len(chunk)
        sleep(config.send_chunk_delay)

        if report_progress:
            report_progress(total_length, total_length - sent)

    logger.debug("Sent %d bytes", sent)
    return sent
