"""
Cartridge Header Block
======================

This module decodes the header block returned by the READ_HEADER
command into a typed `CartridgeMetadata` value.

Header Block Format
-------------------
The block is variable length, driven by the title length byte T:

    Byte 0:        T - title length
    Byte 1..T:     Title (ASCII)
    Byte 1+T:      Title terminator (0x00)
    Byte 1+T+1:    Cartridge type code  (cartridge header 0x0147)
    Byte 1+T+2:    ROM size code        (cartridge header 0x0148)
    Byte 1+T+3:    RAM size code        (cartridge header 0x0149)
    Byte 1+T+4:    ROM version          (cartridge header 0x014C)
    Byte 1+T+5:    Checksum valid flag  (non-zero = header checksum OK)

The whole block must fit the 32-byte receive buffer. A clear checksum
flag means the reader saw no cartridge (or a bad read); none of the other
fields can be trusted then.

The block is parsed once, here; nothing downstream indexes raw bytes.
"""

import re
from dataclasses import dataclass
from typing import Final, Optional

from gbx_link.cartridge.codes import (
    describe_cartridge_type,
    describe_ram_size,
    describe_rom_size,
    ram_size_bytes,
    rom_size_bytes,
)
from gbx_link.config import METADATA_CAPACITY
from gbx_link.errors import MetadataError

# Fixed bytes following the title: terminator, type, ROM, RAM, version, checksum
TRAILER_SIZE: Final[int] = 6

# File extensions used for dumps
ROM_EXTENSION: Final[str] = ".gb"
RAM_EXTENSION: Final[str] = ".sav"

# Characters kept when turning a title into a file name
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9 _\-.()]")


@dataclass(frozen=True)
class CartridgeMetadata:
    """
    Decoded cartridge header.

    Attributes:
        title: Cartridge title (ASCII, NUL padding removed)
        cartridge_type: Memory bank controller code
        rom_size: ROM size code
        ram_size: RAM size code
        version: ROM version number
        checksum_valid: True if the reader validated the header checksum
        raw_title: Title bytes exactly as received
    """

    title: str
    cartridge_type: int
    rom_size: int
    ram_size: int
    version: int
    checksum_valid: bool
    raw_title: bytes = b""

    @property
    def cartridge_type_name(self) -> str:
        return describe_cartridge_type(self.cartridge_type)

    @property
    def rom_size_name(self) -> str:
        return describe_rom_size(self.rom_size)

    @property
    def ram_size_name(self) -> str:
        return describe_ram_size(self.ram_size)

    @property
    def rom_size_bytes(self) -> Optional[int]:
        return rom_size_bytes(self.rom_size)

    @property
    def ram_size_bytes(self) -> Optional[int]:
        return ram_size_bytes(self.ram_size)

    @property
    def rom_filename(self) -> str:
        """Default file name for a ROM dump, e.g. "POKEMON RED.gb"."""
        return self._base_filename() + ROM_EXTENSION

    @property
    def ram_filename(self) -> str:
        """Default file name for a RAM dump, e.g. "POKEMON RED.sav"."""
        return self._base_filename() + RAM_EXTENSION

    def require_valid(self) -> "CartridgeMetadata":
        """
        Return self if the header checksum was valid.

        Raises:
            MetadataError: If the checksum flag is clear.
        """
        if not self.checksum_valid:
            raise MetadataError("No cartridge inserted or cartridge read failed")
        return self

    def _base_filename(self) -> str:
        name = _UNSAFE_FILENAME_CHARS.sub("_", self.title).strip(" .")
        return name or "cartridge"

    def __str__(self) -> str:
        """Format the header the way the reader tool prints it."""
        return "\n".join([
            f"Rom title: {self.title}",
            f"Cartridge type: {self.cartridge_type_name}",
            f"Rom size: {self.rom_size_name}",
            f"Ram size: {self.ram_size_name}",
            f"Rom version: {self.version}",
            f"Checksum: {int(self.checksum_valid)}",
        ])


def check_metadata_payload(payload: bytes, capacity: int = METADATA_CAPACITY) -> int:
    """
    Validate the header block layout before decoding.

    Args:
        payload: Header block as received.
        capacity: Receive buffer size the block has to fit.

    Returns:
        Number of bytes the block occupies (1 + T + 6).

    Raises:
        MetadataError: If the title length points past the payload or the
            block would not fit the buffer.
    """
    if not payload:
        raise MetadataError("Empty cartridge header payload")

    title_length = payload[0]
    needed = 1 + title_length + TRAILER_SIZE
    if needed > capacity:
        raise MetadataError(
            f"Title length {title_length} does not fit a {capacity}-byte header block"
        )
    if needed > len(payload):
        raise MetadataError(
            f"Header block truncated: title length {title_length} needs "
            f"{needed} bytes, got {len(payload)}"
        )
    return needed


def decode_metadata(payload: bytes, capacity: int = METADATA_CAPACITY) -> CartridgeMetadata:
    """
    Decode a header block.

    Decoding is pure: the same payload always yields an equal value.

    Raises:
        MetadataError: If the payload fails `check_metadata_payload`.

    Example:
        >>> meta = decode_metadata(bytes([3]) + b"ABC" + bytes([0, 0x13, 2, 0, 1, 1]))
        >>> meta.title, meta.cartridge_type_name
        ('ABC', '13h - MBC3+RAM+BATTERY')
    """
    check_metadata_payload(payload, capacity)

    title_length = payload[0]
    raw_title = bytes(payload[1:1 + title_length])
    base = 1 + title_length

    return CartridgeMetadata(
        title=raw_title.split(b"\x00", 1)[0].decode("ascii", errors="replace"),
        cartridge_type=payload[base + 1],
        rom_size=payload[base + 2],
        ram_size=payload[base + 3],
        version=payload[base + 4],
        checksum_valid=payload[base + 5] != 0,
        raw_title=raw_title,
    )


def encode_metadata(meta: CartridgeMetadata) -> bytes:
    """
    Build the header block the reader would send for `meta`.

    Used by device simulators and tests.
    """
    title = meta.raw_title or meta.title.encode("ascii")
    return (
        bytes([len(title)])
        + title
        + bytes([
            0x00,
            meta.cartridge_type,
            meta.rom_size,
            meta.ram_size,
            meta.version,
            1 if meta.checksum_valid else 0,
        ])
    )
