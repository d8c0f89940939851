"""
Game Boy Cartridge Header Codes
===============================

Lookup tables for the code bytes found in the cartridge header
(0x0147 cartridge type, 0x0148 ROM size, 0x0149 RAM size), as reported
back by the cartridge reader.

Reference
---------
- Pan Docs, "The Cartridge Header"
"""

from typing import Final, Optional

UNKNOWN: Final[str] = "UNKNOWN"

# 0x0147 - Cartridge type (memory bank controller and extras)
CARTRIDGE_TYPES: Final[dict[int, str]] = {
    0x00: "ROM ONLY",
    0x01: "MBC1",
    0x02: "MBC1+RAM",
    0x03: "MBC1+RAM+BATTERY",
    0x05: "MBC2",
    0x06: "MBC2+BATTERY",
    0x08: "ROM+RAM",
    0x09: "ROM+RAM+BATTERY",
    0x0B: "MMM01",
    0x0C: "MMM01+RAM",
    0x0D: "MMM01+RAM+BATTERY",
    0x0F: "MBC3+TIMER+BATTERY",
    0x10: "MBC3+TIMER+RAM+BATTERY",
    0x11: "MBC3",
    0x12: "MBC3+RAM",
    0x13: "MBC3+RAM+BATTERY",
    0x19: "MBC5",
    0x1A: "MBC5+RAM",
    0x1B: "MBC5+RAM+BATTERY",
    0x1C: "MBC5+RUMBLE",
    0x1D: "MBC5+RUMBLE+RAM",
    0x1E: "MBC5+RUMBLE+RAM+BATTERY",
    0x20: "MBC6",
    0x22: "MBC7+SENSOR+RUMBLE+RAM+BATTERY",
    0xFC: "POCKET CAMERA",
    0xFD: "BANDAI TAMA5",
    0xFE: "HuC3",
    0xFF: "HuC1+RAM+BATTERY",
}

# 0x0148 - ROM size: (description, size in bytes)
ROM_SIZES: Final[dict[int, tuple[str, int]]] = {
    0x00: ("32KByte(no ROM banking)", 32 * 1024),
    0x01: ("64KByte(4 banks)", 64 * 1024),
    0x02: ("128KByte(8 banks)", 128 * 1024),
    0x03: ("256KByte(16 banks)", 256 * 1024),
    0x04: ("512KByte(32 banks)", 512 * 1024),
    0x05: ("1MByte(64 banks) => only 63 banks used by MBC1", 1024 * 1024),
    0x06: ("2MByte(128 banks) => only 125 banks used by MBC1", 2 * 1024 * 1024),
    0x07: ("4MByte(256 banks)", 4 * 1024 * 1024),
    0x08: ("8MByte(512 banks)", 8 * 1024 * 1024),
    0x52: ("1.1MByte(72 banks)", 72 * 16 * 1024),
    0x53: ("1.2MByte(80 banks)", 80 * 16 * 1024),
    0x54: ("1.5MByte(96 banks)", 96 * 16 * 1024),
}

# 0x0149 - External RAM size: (description, size in bytes)
RAM_SIZES: Final[dict[int, tuple[str, int]]] = {
    0x00: ("None", 0),
    0x01: ("2 KBytes", 2 * 1024),
    0x02: ("8 Kbytes", 8 * 1024),
    0x03: ("32 KBytes(4 banks of 8KBytes each)", 32 * 1024),
    0x04: ("128 KBytes(16 banks of 8KBytes each)", 128 * 1024),
    0x05: ("64 KBytes(8 banks of 8KBytes each)", 64 * 1024),
}


def _label(code: int, text: Optional[str]) -> str:
    if text is None:
        return UNKNOWN
    return f"{code:02X}h - {text}"


def describe_cartridge_type(code: int) -> str:
    """Return e.g. "13h - MBC3+RAM+BATTERY" or "UNKNOWN"."""
    return _label(code, CARTRIDGE_TYPES.get(code))


def describe_rom_size(code: int) -> str:
    entry = ROM_SIZES.get(code)
    return _label(code, entry[0] if entry else None)


def describe_ram_size(code: int) -> str:
    entry = RAM_SIZES.get(code)
    return _label(code, entry[0] if entry else None)


def rom_size_bytes(code: int) -> Optional[int]:
    """ROM size in bytes, or None for an unknown code."""
    entry = ROM_SIZES.get(code)
    return entry[1] if entry else None


def ram_size_bytes(code: int) -> Optional[int]:
    """External RAM size in bytes, or None for an unknown code."""
    entry = RAM_SIZES.get(code)
    return entry[1] if entry else None
