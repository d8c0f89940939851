"""
GBx Link Error Hierarchy
========================

This module defines the exception hierarchy for the whole package.
All exceptions inherit from GBxError, allowing callers to catch every
package error with a single except clause if desired.

Exception Hierarchy
-------------------
GBxError (base)
├── MetadataError - cartridge header payload malformed or not trustworthy
└── CommsError (serial communication)
    ├── ConnectionError - cannot open or use the serial port
    ├── TransportWriteError - request packet only partially written
    ├── TimeoutError - sliding deadline expired with no further bytes
    ├── FramingError - response frame could not be recovered
    │   ├── NoFrameMarkerError - DLE STX not found
    │   └── IncompleteLengthError - length field cut short
    ├── CancelledError - user abort
    ├── CapacityError - declared length exceeds the destination
    ├── ShortTransferError - fewer bytes moved than declared
    │   ├── ShortReadError - receive stalled
    │   └── ShortWriteError - transport accepted fewer bytes
    ├── ShortSourceError - source ran out before a full chunk
    └── SinkWriteError - sink accepted fewer bytes than a chunk

NoFrameMarkerError, IncompleteLengthError and ShortReadError are also
TimeoutError subclasses, so "the device went quiet" can be caught in one
place regardless of where in the exchange it happened.

Every error is local to one request/response cycle. After any CommsError the
caller should discard buffered transport bytes and re-read the cartridge
header before the next bulk operation.
"""

from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class GBxError(Exception):
    """
    Base exception for all GBx Link errors.

    All exceptions in the package inherit from this class:

        try:
            client.read_header()
        except GBxError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Cartridge Header Exceptions
# =============================================================================

class MetadataError(GBxError):
    """
    Raised when a cartridge header payload cannot be decoded safely, or
    when decoded metadata is not valid enough to drive a bulk operation.

    Examples:
        - Title length byte points past the end of the payload
        - Header checksum flag is clear (no cartridge inserted)
        - A ROM/RAM dump was requested before any header was read
    """
    pass


# =============================================================================
# Communication Exceptions
# =============================================================================

class CommsError(GBxError):
    """Base exception for serial communication errors."""
    pass


class ConnectionError(CommsError):
    """
    Raised when the serial port cannot be opened or used.

    Common causes:
        - Device not connected
        - Wrong serial port specified
        - Permission denied on the port device
        - Port already in use by another program
    """
    pass


class TransportWriteError(CommsError):
    """
    Raised when a request packet is not written in full.

    Partial request writes are never retried; the whole request has to be
    issued again by the caller.
    """

    def __init__(self, expected: int, written: int, message: str = ""):
        self.expected = expected
        self.written = written
        super().__init__(
            message or f"Request write incomplete: {written} of {expected} bytes"
        )


class TimeoutError(CommsError):
    """
    Raised when the sliding deadline expires.

    The deadline is reset every time at least one byte arrives, so this
    means the transport delivered nothing at all for a whole timeout window.
    """
    pass


class FramingError(CommsError):
    """Base class for response frame recovery failures."""
    pass


class NoFrameMarkerError(FramingError, TimeoutError):
    """
    Raised when the DLE STX frame marker is not found.

    This covers both a device that never answered and a DLE followed by
    something other than STX.
    """
    pass


class IncompleteLengthError(FramingError, TimeoutError):
    """Raised when fewer than 4 length bytes follow the frame marker."""

    def __init__(self, received: int, message: str = ""):
        self.received = received
        super().__init__(
            message or f"Length field incomplete: got {received} of 4 bytes"
        )


class CancelledError(CommsError):
    """
    Raised when the user aborts an operation.

    This is not a data error: the operation was stopped on purpose and the
    caller should report "aborted" rather than a failure.

    Attributes:
        expected: Declared byte count of the aborted transfer (if any)
        transferred: Bytes moved before the abort (if any)
    """

    def __init__(
        self,
        message: str = "Operation cancelled",
        expected: Optional[int] = None,
        transferred: Optional[int] = None,
    ):
        self.expected = expected
        self.transferred = transferred
        super().__init__(message)


class CapacityError(CommsError):
    """
    Raised when a declared payload does not fit its destination buffer.

    The payload is never silently truncated.
    """

    def __init__(self, length: int, capacity: int, message: str = ""):
        self.length = length
        self.capacity = capacity
        super().__init__(
            message or f"Payload of {length} bytes exceeds buffer capacity {capacity}"
        )


class ShortTransferError(CommsError):
    """
    Raised when fewer bytes were moved than the declared length.

    Any partial output (buffer or file) must be treated as invalid.

    Attributes:
        expected: Declared byte count
        transferred: Bytes actually moved
    """

    def __init__(self, expected: int, transferred: int, message: str = ""):
        self.expected = expected
        self.transferred = transferred
        super().__init__(
            message or f"Missing data: moved {transferred} of {expected} bytes"
        )

    @property
    def missing(self) -> int:
        """Number of bytes that were never moved."""
        return self.expected - self.transferred


class ShortReadError(ShortTransferError, TimeoutError):
    """Raised when the device stops sending before the payload is complete."""
    pass


class ShortWriteError(ShortTransferError):
    """Raised when the transport accepts fewer bytes than a chunk."""
    pass


class ShortSourceError(CommsError):
    """
    Raised when the source file returns less than a full chunk.

    The source must be pre-sized to the declared length.
    """

    def __init__(self, offset: int, wanted: int, got: int):
        self.offset = offset
        self.wanted = wanted
        self.got = got
        super().__init__(
            f"Source exhausted at offset {offset}: wanted {wanted} bytes, got {got}"
        )


class SinkWriteError(CommsError):
    """Raised when the output sink fails to store a received chunk."""
    pass
