"""
Cartridge Reader Client
=======================

High-level operations against the cartridge reader. Each method runs one
complete request/response cycle:

1. Discard stale bytes left in the transport
2. Send the 7-byte request
3. Receive the response header
4. Drain exactly the announced payload

Session State
-------------
The only state kept between calls is the most recently read cartridge
header. ROM and RAM operations need it (for file names and to know a
cartridge is present), so callers read the header first:

    client = CartridgeClient(transport)
    meta = client.read_header()
    with open(meta.rom_filename, "wb") as f:
        client.read_rom(f)

The cached header is dropped whenever an operation fails, so a new header
read is forced after any aborted exchange.

Thread Safety
-------------
This class is NOT thread-safe. Use only from a single thread. The only
cross-thread interaction supported is setting the cancel token.
"""

import logging
import struct
import time
from typing import BinaryIO, Optional

from gbx_link.cartridge.header import CartridgeMetadata, decode_metadata
from gbx_link.comms.framing import Command, receive_header, write_request
from gbx_link.comms.transfer import (
    ProgressCallback,
    receive_into_buffer,
    receive_into_sink,
    send_from_source,
)
from gbx_link.comms.transport import CancelToken, Clock, Sleep, Transport
from gbx_link.comms.verify import VerifyResult, VerifyState, verify_write
from gbx_link.config import LinkConfig
from gbx_link.errors import CommsError, FramingError, MetadataError

# Configure module logger
logger = logging.getLogger(__name__)

# GET_RAM_SIZE reply: u32 big-endian
RAM_SIZE_REPLY_LENGTH = 4


class CartridgeClient:
    """
    One client talking to one cartridge reader, one request at a time.

    Attributes:
        transport: Exclusive link to the device.
        config: Link tuning values.
        cancel: Cancellation token polled by every loop.
        metadata: Last header read, or None.
        verify_state: Progress of the last RAM write (VerifyState) or None.
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
        self.cancel = cancel or CancelToken()
        self._clock = clock
        self._sleep = sleep
        self.metadata: Optional[CartridgeMetadata] = None
        self.verify_state: Optional[VerifyState] = None

    # -------------------------------------------------------------------------
    # Header
    # -------------------------------------------------------------------------

    def read_header(self) -> CartridgeMetadata:
        """
        Read and decode the cartridge header.

        The decoded header is cached only if its checksum flag is set.

        Returns:
            Decoded metadata (check `checksum_valid` before trusting it).

        Raises:
            MetadataError: If the header block is malformed.
            CommsError: On any framing or transfer failure.
        """
        self.metadata = None
        capacity = self.config.metadata_capacity

        with self._exchange("read header"):
            length = self._request(Command.READ_HEADER)
            buffer = bytearray(capacity)
            receive_into_buffer(
                self.transport, length, buffer, capacity,
                **self._loop_kwargs(),
            )

        meta = decode_metadata(bytes(buffer[:length]), capacity)
        if meta.checksum_valid:
            self.metadata = meta
            logger.info("Cartridge: %s (%s)", meta.title, meta.cartridge_type_name)
        else:
            logger.warning("No cartridge inserted or cartridge read failed")
        return meta

    def require_metadata(self) -> CartridgeMetadata:
        """
        Return the cached header.

        Raises:
            MetadataError: If no valid header has been read.
        """
        if self.metadata is None:
            raise MetadataError("No cartridge info, read the header first")
        return self.metadata.require_valid()

    # -------------------------------------------------------------------------
    # RAM size
    # -------------------------------------------------------------------------

    def get_ram_size(self) -> int:
        """Ask the device how many bytes of cartridge RAM it will accept."""
        with self._exchange("get RAM size"):
            length = self._request(Command.GET_RAM_SIZE)
            if length == 0:
                raise CommsError("Device announced an empty RAM size reply")
            if length < RAM_SIZE_REPLY_LENGTH:
                raise FramingError(
                    f"RAM size reply is {length} bytes, expected {RAM_SIZE_REPLY_LENGTH}"
                )
            buffer = bytearray(RAM_SIZE_REPLY_LENGTH)
            receive_into_buffer(
                self.transport, length, buffer, RAM_SIZE_REPLY_LENGTH,
                **self._loop_kwargs(),
            )

        (ram_size,) = struct.unpack(">I", bytes(buffer))
        logger.debug("Got RAM size: %d", ram_size)
        return ram_size

    # -------------------------------------------------------------------------
    # Dumps
    # -------------------------------------------------------------------------

    def read_rom(self, sink: BinaryIO, progress: Optional[ProgressCallback] = None) -> int:
        """Stream the ROM image into `sink`. Returns the number of bytes."""
        return self._dump(Command.READ_ROM, sink, progress)

    def read_ram(self, sink: BinaryIO, progress: Optional[ProgressCallback] = None) -> int:
        """Stream the cartridge RAM image into `sink`. Returns the number of bytes."""
        return self._dump(Command.READ_RAM, sink, progress)

    def _dump(
        self,
        command: Command,
        sink: BinaryIO,
        progress: Optional[ProgressCallback],
    ) -> int:
        self.require_metadata()

        with self._exchange(command.name.lower()):
            length = self._request(command)
            if length == 0:
                raise CommsError("Error got no packet size!")
            logger.info("Receiving %d bytes (%s)", length, command.name)
            return receive_into_sink(
                self.transport, length, sink, progress,
                **self._loop_kwargs(),
            )

    # -------------------------------------------------------------------------
    # RAM restore
    # -------------------------------------------------------------------------

    def write_ram(
        self,
        source: BinaryIO,
        length: int,
        progress: Optional[ProgressCallback] = None,
        verify: bool = False,
        verify_progress: Optional[ProgressCallback] = None,
    ) -> Optional[VerifyResult]:
        """
        Write a RAM image to the cartridge.

        The WRITE_RAM request has no framed reply: after a short settle
        delay the host streams exactly `length` bytes, which must match
        the size reported by `get_ram_size()`.

        Args:
            source: Seekable image positioned at its start.
            length: Number of bytes to send.
            progress: Optional (total, remaining) callback for the write.
            verify: Read the RAM back and compare afterwards.
            verify_progress: Optional callback for the read-back.

        Returns:
            VerifyResult if `verify` is set, else None.
        """
        self.require_metadata()
        self.verify_state = VerifyState.REQUESTED_WRITE

        with self._exchange("write RAM"):
            self.transport.discard()
            write_request(self.transport, Command.WRITE_RAM)
            self._sleep(self.config.write_settle_delay)
            send_from_source(
                self.transport, source, length, progress,
                cancel=self.cancel, config=self.config, sleep=self._sleep,
            )
        self.verify_state = VerifyState.SENT
        logger.info("Wrote %d bytes of RAM", length)

        if not verify:
            return None

        self.verify_state = VerifyState.VERIFYING
        with self._exchange("verify RAM"):
            result = verify_write(
                self.transport, source, length, verify_progress,
                **self._loop_kwargs(),
            )
        self.verify_state = result.state
        return result

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _request(self, command: Command) -> int:
        """Send a request and return the announced payload length."""
        self.transport.discard()
        write_request(self.transport, command)
        self._sleep(self.config.request_settle_delay)
        return receive_header(
            self.transport, self.config, self.cancel, self._clock, self._sleep
        )

    def _loop_kwargs(self) -> dict:
        return {
            "cancel": self.cancel,
            "config": self.config,
            "clock": self._clock,
            "sleep": self._sleep,
        }

    def _exchange(self, what: str) -> "_Exchange":
        return _Exchange(self, what)


class _Exchange:
    """Context manager that drops cached state when an exchange fails."""

    def __init__(self, client: CartridgeClient, what: str):
        self.client = client
        self.what = what

    def __enter__(self) -> None:
        logger.debug("Begin %s", self.what)

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and issubclass(exc_type, CommsError):
            logger.debug("%s failed: %s", self.what, exc)
            self.client.metadata = None
        return False
