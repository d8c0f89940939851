"""
Game Boy Cartridge Header Handling
==================================

Decoding of the header block returned by the cartridge reader, plus the
code tables needed to describe it.

    >>> from gbx_link.cartridge import decode_metadata
    >>> meta = decode_metadata(payload)
    >>> meta.require_valid().rom_filename
    'POKEMON RED.gb'
"""

from gbx_link.cartridge.codes import (
    CARTRIDGE_TYPES,
    RAM_SIZES,
    ROM_SIZES,
    UNKNOWN,
    describe_cartridge_type,
    describe_ram_size,
    describe_rom_size,
    ram_size_bytes,
    rom_size_bytes,
)
from gbx_link.cartridge.header import (
    RAM_EXTENSION,
    ROM_EXTENSION,
    TRAILER_SIZE,
    CartridgeMetadata,
    check_metadata_payload,
    decode_metadata,
    encode_metadata,
)

__all__ = [
    "CARTRIDGE_TYPES",
    "RAM_SIZES",
    "ROM_SIZES",
    "UNKNOWN",
    "describe_cartridge_type",
    "describe_ram_size",
    "describe_rom_size",
    "ram_size_bytes",
    "rom_size_bytes",
    "RAM_EXTENSION",
    "ROM_EXTENSION",
    "TRAILER_SIZE",
    "CartridgeMetadata",
    "check_metadata_payload",
    "decode_metadata",
    "encode_metadata",
]
