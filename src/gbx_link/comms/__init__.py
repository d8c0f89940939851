"""
Cartridge Reader Communication Module
=====================================

This module provides the host side of the serial link to an Arduino
Game Boy cartridge reader/writer: dumping ROM and save RAM, and restoring
save RAM with an optional read-back verification.

Protocol Architecture
---------------------
The host is the master. It sends one 7-byte request and the device
answers with a single length-prefixed frame:

    Host   ──  10 02 00 00 00 01 CMD  ──>  Device
    Host   <── 10 02 L0 L1 L2 L3 <payload, L bytes> ──  Device

WRITE_RAM is the exception: the device sends no frame and the host
streams the RAM image right after the request.

Module Structure
----------------
- **transport**: Transport protocol, cancel token and sliding deadline
- **serial**: Serial port utilities and the pyserial transport
- **framing**: Request packets and the response header state machine
- **transfer**: Bulk payload movement into buffers, sinks and from sources
- **verify**: Read-after-write verification of RAM restores
- **client**: High-level CartridgeClient operations

Quick Start
-----------
**Dumping a ROM:**

    from gbx_link.comms import CartridgeClient, open_serial_transport

    with open_serial_transport('/dev/ttyACM0') as transport:
        client = CartridgeClient(transport)
        meta = client.read_header()
        with open(meta.rom_filename, 'wb') as f:
            client.read_rom(f)

**Restoring save RAM:**

    with open_serial_transport('/dev/ttyACM0') as transport:
        client = CartridgeClient(transport)
        client.read_header()
        size = client.get_ram_size()
        with open('save.sav', 'rb') as f:
            result = client.write_ram(f, size, verify=True)
        print(result.describe())

Hardware Requirements
---------------------
- Arduino (or clone) running the cartridge reader firmware
- Serial settings: 500000 baud, 8 data bits, no parity, 1 stop bit
- No flow control

Error Handling
--------------
All communication errors inherit from `CommsError`:

- `ConnectionError`: Cannot open or use the serial port
- `TimeoutError`: The device went quiet for a whole timeout window
- `FramingError`: No valid response header was found
- `CancelledError`: The user aborted the operation

These exceptions are defined in `gbx_link.errors`.

Thread Safety
-------------
The communication classes are NOT thread-safe. Use only from a single
thread. A CancelToken may be set from a signal handler or another thread.
"""

# =============================================================================
# Public API Exports
# =============================================================================

# Transport abstractions
from gbx_link.comms.transport import (
    CancelToken,
    Deadline,
    Transport,
    is_cancelled,
)

# Serial port utilities
from gbx_link.comms.serial import (
    USB_VENDOR_IDS,
    VALID_BAUD_RATES,
    PortInfo,
    SerialTransport,
    find_device_port,
    format_port_list,
    list_serial_ports,
    open_serial_port,
    open_serial_transport,
)

# Packet framing
from gbx_link.comms.framing import (
    DLE,
    FRAME_MARKER,
    LENGTH_FIELD_SIZE,
    REQUEST_PACKET_SIZE,
    RESPONSE_HEADER_SIZE,
    STX,
    Command,
    FrameState,
    RequestPacket,
    ResponseReceiver,
    build_request,
    encode_response_header,
    receive_header,
    write_request,
)

# Bulk transfer
from gbx_link.comms.transfer import (
    ProgressCallback,
    receive_into_buffer,
    receive_into_sink,
    send_from_source,
)

# Verification
from gbx_link.comms.verify import (
    VerifyResult,
    VerifyState,
    compare_images,
    verify_write,
)

# High-level client
from gbx_link.comms.client import CartridgeClient

# Configuration constants
from gbx_link.config import DEFAULT_BAUD_RATE, LinkConfig

__all__ = [
    # Transport
    "CancelToken",
    "Deadline",
    "Transport",
    "is_cancelled",
    # Serial
    "DEFAULT_BAUD_RATE",
    "USB_VENDOR_IDS",
    "VALID_BAUD_RATES",
    "PortInfo",
    "SerialTransport",
    "find_device_port",
    "format_port_list",
    "list_serial_ports",
    "open_serial_port",
    "open_serial_transport",
    # Framing
    "DLE",
    "FRAME_MARKER",
    "LENGTH_FIELD_SIZE",
    "REQUEST_PACKET_SIZE",
    "RESPONSE_HEADER_SIZE",
    "STX",
    "Command",
    "FrameState",
    "RequestPacket",
    "ResponseReceiver",
    "build_request",
    "encode_response_header",
    "receive_header",
    "write_request",
    # Transfer
    "ProgressCallback",
    "receive_into_buffer",
    "receive_into_sink",
    "send_from_source",
    # Verification
    "VerifyResult",
    "VerifyState",
    "compare_images",
    "verify_write",
    # Client
    "CartridgeClient",
    "LinkConfig",
]
