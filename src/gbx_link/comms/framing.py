"""
Cartridge Reader Packet Framing
===============================

This module implements the framing used between the host and the
Arduino cartridge reader/writer. It handles:

- Request packet encoding (host to device)
- Response header recovery from a noisy byte stream (device to host)
- The sliding-deadline receive state machine

Request Packet
--------------
Every request is exactly 7 bytes. The length field is always 1 because
the only payload is the command byte itself:

    ┌────────┬────────┬────────────────────┬────────┐
    │  DLE   │  STX   │  Length (u32 BE)   │  CMD   │
    │   10   │   02   │   00 00 00 01      │   XX   │
    └────────┴────────┴────────────────────┴────────┘

Response Header
---------------
    ┌────────┬────────┬────────────────────┬─────────────┐
    │  DLE   │  STX   │  Length (u32 BE)   │  Payload... │
    │   10   │   02   │   L0 L1 L2 L3      │  L bytes    │
    └────────┴────────┴────────────────────┴─────────────┘

There is no footer, no escaping and no checksum. The length is the exact
number of payload bytes that follow and the whole payload must be drained
before another header is looked for.

Receive State Machine
---------------------
    SEEK_DLE ──DLE──> SEEK_STX ──STX──> READ_LENGTH ──4 bytes──> DONE
        │                 │                  │
        └── deadline ─────┴──── deadline ────┴──> TIMEOUT
    (any state) ── cancel ──> CANCELLED

A byte other than STX after DLE ends the search with NoFrameMarkerError,
unless `LinkConfig.resync_on_bad_stx` is set, in which case the search
continues from SEEK_DLE.
"""

import logging
import struct
import time
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Final, Optional

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
    FramingError,
    IncompleteLengthError,
    NoFrameMarkerError,
    TransportWriteError,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Protocol Constants
# =============================================================================

# Frame marker bytes
DLE: Final[int] = 0x10
STX: Final[int] = 0x02
FRAME_MARKER: Final[bytes] = bytes([DLE, STX])

# Size of the length field in every header
LENGTH_FIELD_SIZE: Final[int] = 4

# Response header: marker + length
RESPONSE_HEADER_SIZE: Final[int] = len(FRAME_MARKER) + LENGTH_FIELD_SIZE

# Request packets carry only the command byte
REQUEST_PAYLOAD_LENGTH: Final[int] = 1
REQUEST_PACKET_SIZE: Final[int] = RESPONSE_HEADER_SIZE + REQUEST_PAYLOAD_LENGTH

# Largest length the 4-byte field can announce
MAX_PAYLOAD_LENGTH: Final[int] = 0xFFFFFFFF


# =============================================================================
# Commands
# =============================================================================

class Command(IntEnum):
    """
    One-byte opcodes understood by the cartridge reader.

    Replies:
        READ_HEADER: header block (title, type, sizes, version, checksum flag)
        READ_ROM: complete ROM image
        READ_RAM: complete cartridge RAM image
        WRITE_RAM: no framed reply; the host streams the RAM image
        GET_RAM_SIZE: RAM size in bytes as u32 big-endian
    """

    READ_HEADER = 0x01
    READ_ROM = 0x02
    READ_RAM = 0x03
    WRITE_RAM = 0x04
    GET_RAM_SIZE = 0xF0


# =============================================================================
# Request Packet
# =============================================================================

@dataclass(frozen=True)
class RequestPacket:
    """
    A 7-byte host request.

    Example:
        wire = RequestPacket(Command.READ_ROM).to_bytes()
        # b'\\x10\\x02\\x00\\x00\\x00\\x01\\x02'
        RequestPacket.from_bytes(wire).command  # Command.READ_ROM
    """

    command: Command

    def to_bytes(self) -> bytes:
        """Serialize the request for transmission."""
        return (
            FRAME_MARKER
            + struct.pack(">I", REQUEST_PAYLOAD_LENGTH)
            + bytes([self.command])
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "RequestPacket":
        """
        Parse a request packet (used by device simulators and tests).

        Raises:
            FramingError: If the data is not a well-formed request.
        """
        if len(data) != REQUEST_PACKET_SIZE:
            raise FramingError(
                f"Request must be {REQUEST_PACKET_SIZE} bytes, got {len(data)}"
            )
        if data[:2] != FRAME_MARKER:
            raise FramingError(f"Invalid frame marker: {data[:2].hex()}")
        (length,) = struct.unpack(">I", data[2:6])
        if length != REQUEST_PAYLOAD_LENGTH:
            raise FramingError(f"Request length must be 1, got {length}")
        try:
            command = Command(data[6])
        except ValueError:
            raise FramingError(f"Unknown command: 0x{data[6]:02X}") from None
        return cls(command)

    def __len__(self) -> int:
        return REQUEST_PACKET_SIZE


def build_request(command: Command) -> bytes:
    """Return the 7 wire bytes for a command."""
    return RequestPacket(Command(command)).to_bytes()


def write_request(transport: Transport, command: Command) -> None:
    """
    Send a request packet.

    Raises:
        TransportWriteError: If fewer than 7 bytes were written. Partial
            writes are not retried.
    """
    packet = build_request(command)
    logger.debug("TX request %s: %s", Command(command).name, packet.hex(" "))
    written = transport.write(packet)
    if written != len(packet):
        raise TransportWriteError(len(packet), written or 0)


def encode_response_header(length: int) -> bytes:
    """Build a response header announcing `length` payload bytes."""
    if not 0 <= length <= MAX_PAYLOAD_LENGTH:
        raise ValueError(f"Payload length out of range: {length}")
    return FRAME_MARKER + struct.pack(">I", length)


# =============================================================================
# Receive State Machine
# =============================================================================

class FrameState(Enum):
    """States of the response header receiver."""

    SEEK_DLE = "seek_dle"
    SEEK_STX = "seek_stx"
    READ_LENGTH = "read_length"
    DONE = "done"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class ResponseReceiver:
    """
    Recovers one response header and reports the payload length.

    The receiver reads one byte at a time while hunting for the frame
    marker, then up to the remaining length bytes at once. Each read that
    returns data restarts the deadline; an empty read sleeps one poll
    interval and then checks it.

    Usage:
        receiver = ResponseReceiver(transport, config, cancel)
        length = receiver.receive()
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[LinkConfig] = None,
        cancel: Optional[CancelToken] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = time.sleep,
    ):
        self.transport = transport
        self.config = config or LinkConfig()
        self.cancel = cancel
        self._clock = clock
        self._sleep = sleep
        self.state = FrameState.SEEK_DLE
        self.discarded = 0
        self._length_bytes = bytearray()

    def receive(self) -> int:
        """
        Run the state machine until a length is known.

        Returns:
            Announced payload length.

        Raises:
            NoFrameMarkerError: Marker not found before the deadline, or
                DLE not followed by STX.
            IncompleteLengthError: Length field cut short by the deadline.
            CancelledError: Cancellation requested.
        """
        self.state = FrameState.SEEK_DLE
        self.discarded = 0
        self._length_bytes.clear()
        deadline = Deadline(self.config.timeout, self._clock)

        while self.state != FrameState.DONE:
            if is_cancelled(self.cancel):
                self.state = FrameState.CANCELLED
                raise CancelledError("Cancelled while waiting for response")

            if self.state == FrameState.READ_LENGTH:
                wanted = LENGTH_FIELD_SIZE - len(self._length_bytes)
            else:
                wanted = 1

            data = self.transport.read(wanted)
            if not data:
                if deadline.expired:
                    self._fail_on_timeout()
                self._sleep(self.config.poll_interval)
                continue

            deadline.touch()
            self._feed(data)

        length = struct.unpack(">I", bytes(self._length_bytes))[0]
        if self.discarded:
            logger.debug("Discarded %d bytes before frame marker", self.discarded)
        logger.debug("RX header: length=%d", length)
        return length

    def _feed(self, data: bytes) -> None:
        """Advance the state machine with freshly read bytes."""
        if self.state == FrameState.SEEK_DLE:
            if data[0] == DLE:
                self._enter(FrameState.SEEK_STX)
            else:
                self.discarded += 1

        elif self.state == FrameState.SEEK_STX:
            byte = data[0]
            if byte == STX:
                self._enter(FrameState.READ_LENGTH)
            elif not self.config.resync_on_bad_stx:
                self.state = FrameState.TIMEOUT
                raise NoFrameMarkerError(
                    f"Invalid frame: DLE followed by 0x{byte:02X}, expected STX"
                )
            elif byte != DLE:
                # Stay in SEEK_STX on a repeated DLE, otherwise start over
                self.discarded += 2
                self._enter(FrameState.SEEK_DLE)
            else:
                self.discarded += 1

        elif self.state == FrameState.READ_LENGTH:
            self._length_bytes.extend(data[:LENGTH_FIELD_SIZE - len(self._length_bytes)])
            if len(self._length_bytes) == LENGTH_FIELD_SIZE:
                self._enter(FrameState.DONE)

    def _enter(self, state: FrameState) -> None:
        logger.debug("Frame state %s -> %s", self.state.name, state.name)
        self.state = state

    def _fail_on_timeout(self) -> None:
        previous = self.state
        self.state = FrameState.TIMEOUT
        if previous == FrameState.READ_LENGTH:
            raise IncompleteLengthError(len(self._length_bytes))
        raise NoFrameMarkerError(
            f"TIMEOUT: DLE and/or STX not received within {self.config.timeout}s"
        )


def receive_header(
    transport: Transport,
    config: Optional[LinkConfig] = None,
    cancel: Optional[CancelToken] = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> int:
    """Receive one response header and return its payload length."""
    return ResponseReceiver(transport, config, cancel, clock, sleep).receive()
