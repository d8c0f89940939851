"""
GBx Link - Host Client for the Arduino Game Boy Cartridge Reader
================================================================

This package talks to an Arduino-based Game Boy cartridge reader/writer
over a serial link. It can read the cartridge header, dump the ROM and
the battery-backed save RAM, and write a save file back to the cartridge.

Main Components
---------------
- **comms**: Serial link, packet framing, bulk transfers and verification
- **cartridge**: Cartridge header decoding and code tables
- **config**: Link tuning values (timeouts, chunk sizes, pacing)
- **cli**: The `gbxlink` command-line tool

Quick Start
-----------
Read the header:
    >>> from gbx_link import CartridgeClient, open_serial_transport
    >>> with open_serial_transport("/dev/ttyACM0") as transport:
    ...     print(CartridgeClient(transport).read_header())

Or use the command-line tool:
    $ gbxlink header
    $ gbxlink read-rom
    $ gbxlink write-ram "POKEMON RED.sav" --verify

Version History
---------------
1.0.0 - Initial release with header, ROM/RAM dump and RAM restore
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from gbx_link.errors import (
    GBxError,
    MetadataError,
    CommsError,
    ConnectionError,
    TimeoutError,
    FramingError,
    CancelledError,
)
from gbx_link.config import LinkConfig
from gbx_link.cartridge import CartridgeMetadata, decode_metadata
from gbx_link.comms import (
    CancelToken,
    CartridgeClient,
    Command,
    VerifyResult,
    open_serial_transport,
)

__all__ = [
    "__version__",
    # Errors
    "GBxError",
    "MetadataError",
    "CommsError",
    "ConnectionError",
    "TimeoutError",
    "FramingError",
    "CancelledError",
    # Configuration
    "LinkConfig",
    # Cartridge
    "CartridgeMetadata",
    "decode_metadata",
    # Comms
    "CancelToken",
    "CartridgeClient",
    "Command",
    "VerifyResult",
    "open_serial_transport",
]
