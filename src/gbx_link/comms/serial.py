"""
Serial Port Utilities for the Cartridge Reader
==============================================

This module provides the serial side of the link to the Arduino
cartridge reader/writer. It handles:

- Port enumeration and detection
- Automatic detection of likely Arduino boards
- Port configuration (8N1, no flow control, non-blocking reads)
- The SerialTransport adapter used by the protocol code

Serial Port Settings
--------------------
- Baud Rate: 500000 (must match the firmware build)
- Data Bits: 8
- Parity: None
- Stop Bits: 1
- Flow Control: None (the host paces its writes instead)

Reads are non-blocking (pyserial ``timeout=0``): the protocol layer polls
and applies its own sliding deadline.

Most Arduino boards reset when the port is opened, so the transport waits
a short while and throws away whatever the bootloader printed before the
first request is sent.
"""

import logging
import time
from dataclasses import dataclass
from typing import Final, Optional

import serial
import serial.tools.list_ports

from gbx_link.config import DEFAULT_BAUD_RATE, LinkConfig
from gbx_link.errors import ConnectionError

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Baud rates the firmware can be built for
VALID_BAUD_RATES: Final[tuple[int, ...]] = (
    9600, 19200, 38400, 57600, 115200, 250000, 500000, 1000000,
)

# USB Vendor IDs for boards and adapters the reader is built on
USB_VENDOR_IDS: Final[dict[int, str]] = {
    0x2341: "Arduino",      # Arduino LLC
    0x2A03: "Arduino",      # Arduino SRL
    0x1A86: "QinHeng",      # CH340 clones
    0x0403: "FTDI",         # Future Technology Devices International
    0x10C4: "Silicon Labs", # CP210x
}

# Detection priority (genuine boards first)
_PREFERRED_VIDS: Final[tuple[int, ...]] = (0x2341, 0x2A03, 0x1A86, 0x0403, 0x10C4)


# =============================================================================
# Port Information
# =============================================================================

@dataclass(frozen=True)
class PortInfo:
    """
    Information about an available serial port.

    Attributes:
        device: System device path (e.g., '/dev/ttyACM0', 'COM9')
        description: Human-readable description from the driver
        manufacturer: Device manufacturer (if available)
        product: Product name (if available)
        serial_number: Device serial number (if available)
        vid: USB Vendor ID (None for non-USB ports)
        pid: USB Product ID (None for non-USB ports)
    """

    device: str
    description: str
    manufacturer: Optional[str]
    product: Optional[str]
    serial_number: Optional[str]
    vid: Optional[int]
    pid: Optional[int]

    @property
    def is_usb(self) -> bool:
        """Return True if this is a USB device."""
        return self.vid is not None

    @property
    def vendor_name(self) -> Optional[str]:
        """Return the vendor name for known USB boards and adapters."""
        if self.vid is not None:
            return USB_VENDOR_IDS.get(self.vid)
        return None

    def __str__(self) -> str:
        parts = [self.device]
        if self.description:
            parts.append(f"- {self.description}")
        if self.vendor_name:
            parts.append(f"({self.vendor_name})")
        return " ".join(parts)


# =============================================================================
# Port Enumeration
# =============================================================================

def list_serial_ports() -> list[PortInfo]:
    """
    List all available serial ports on the system.

    Returns:
        List of PortInfo objects describing available ports.
    """
    ports = []

    for port in serial.tools.list_ports.comports():
        info = PortInfo(
            device=port.device,
            description=port.description or "",
            manufacturer=port.manufacturer,
            product=port.product,
            serial_number=port.serial_number,
            vid=port.vid,
            pid=port.pid,
        )
        ports.append(info)
        logger.debug(
            "Found port: %s (vid=%s, pid=%s)",
            port.device,
            f"{port.vid:04X}" if port.vid else "N/A",
            f"{port.pid:04X}" if port.pid else "N/A",
        )

    return ports


def find_device_port() -> Optional[str]:
    """
    Attempt to auto-detect the cartridge reader's serial port.

    Detection Priority:
    1. Genuine Arduino boards
    2. CH340, FTDI and CP210x based clones (in that order)
    3. Any other USB serial device
    4. None if no USB serial device is present

    Returns:
        Device path of the detected port, or None if not found.
    """
    usb_ports = [p for p in list_serial_ports() if p.is_usb]

    if not usb_ports:
        logger.debug("No USB serial ports found")
        return None

    for vid in _PREFERRED_VIDS:
        for port in usb_ports:
            if port.vid == vid:
                logger.info(
                    "Auto-detected port: %s (%s)",
                    port.device, port.vendor_name
                )
                return port.device

    first_usb = usb_ports[0]
    logger.info(
        "Using first USB serial port: %s (%s)",
        first_usb.device, first_usb.description
    )
    return first_usb.device


def format_port_list(ports: list[PortInfo], verbose: bool = False) -> str:
    """
    Format a list of ports for display to the user.

    Args:
        ports: List of PortInfo objects to format.
        verbose: If True, include additional details.

    Returns:
        Formatted string with one port per line.
    """
    if not ports:
        return "No serial ports found."

    lines = []
    for port in ports:
        if verbose:
            line = f"  {port.device}"
            if port.description:
                line += f"\n    Description: {port.description}"
            if port.manufacturer:
                line += f"\n    Manufacturer: {port.manufacturer}"
            if port.product:
                line += f"\n    Product: {port.product}"
            if port.vid is not None:
                line += f"\n    USB VID:PID: {port.vid:04X}:{port.pid:04X}"
                if port.vendor_name:
                    line += f" ({port.vendor_name})"
            if port.serial_number:
                line += f"\n    Serial: {port.serial_number}"
            lines.append(line)
        else:
            lines.append(f"  {port}")

    return "\n".join(lines)


# =============================================================================
# Port Configuration
# =============================================================================

def open_serial_port(device: str, baud_rate: int = DEFAULT_BAUD_RATE) -> serial.Serial:
    """
    Open and configure a serial port for the cartridge reader.

    The port is opened with 8N1, no flow control, and a zero read timeout
    so that reads never block.

    Args:
        device: Serial port device path (e.g., '/dev/ttyACM0', 'COM9').
        baud_rate: Baud rate, must be one of VALID_BAUD_RATES.

    Returns:
        Configured and opened serial.Serial object.

    Raises:
        ConnectionError: If the port cannot be opened or configured.
        ValueError: If baud_rate is not a valid value.
    """
    if baud_rate not in VALID_BAUD_RATES:
        valid_str = ", ".join(str(b) for b in VALID_BAUD_RATES)
        raise ValueError(
            f"Invalid baud rate: {baud_rate}. Valid rates: {valid_str}"
        )

    logger.info("Opening serial port: %s at %d baud", device, baud_rate)

    try:
        port = serial.Serial(
            port=device,
            baudrate=baud_rate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=0,          # Non-blocking reads
            xonxoff=False,
            rtscts=False,
            dsrdtr=False,
        )
    except serial.SerialException as e:
        error_msg = str(e)

        if "Permission denied" in error_msg:
            raise ConnectionError(
                f"Permission denied accessing {device}. "
                "You may need to add your user to the 'dialout' group: "
                "sudo usermod -a -G dialout $USER"
            ) from e
        elif "No such file" in error_msg or "not found" in error_msg.lower():
            raise ConnectionError(
                f"Serial port not found: {device}. "
                "Use 'gbxlink ports' to list available ports."
            ) from e
        elif "busy" in error_msg.lower() or "in use" in error_msg.lower():
            raise ConnectionError(
                f"Serial port {device} is busy. "
                "Close any other programs using the port."
            ) from e
        else:
            raise ConnectionError(f"Cannot open {device}: {e}") from e

    logger.debug("Port opened: %s", device)
    return port


# =============================================================================
# Transport Adapter
# =============================================================================

class SerialTransport:
    """
    Transport backed by a pyserial port.

    Example:
        with open_serial_transport('/dev/ttyACM0') as transport:
            client = CartridgeClient(transport)
            print(client.read_header().title)
    """

    def __init__(self, port: serial.Serial):
        self.port = port

    def read(self, size: int) -> bytes:
        try:
            return self.port.read(size)
        except serial.SerialException as e:
            raise ConnectionError(f"Serial read failed: {e}") from e

    def write(self, data: bytes) -> int:
        try:
            written = self.port.write(data)
        except serial.SerialTimeoutException:
            return 0
        except serial.SerialException as e:
            raise ConnectionError(f"Serial write failed: {e}") from e
        return len(data) if written is None else written

    def discard(self) -> None:
        """Drop any bytes buffered in either direction."""
        self.port.reset_input_buffer()
        self.port.reset_output_buffer()

    def close(self) -> None:
        """
        Close the port, ignoring errors during close.
        """
        try:
            if self.port.is_open:
                self.port.close()
                logger.debug("Serial port closed")
        except serial.SerialException as e:
            logger.warning("Error closing serial port: %s", e)

    def __enter__(self) -> "SerialTransport":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def open_serial_transport(
    device: str,
    config: Optional[LinkConfig] = None,
) -> SerialTransport:
    """
    Open a port and wait for the board to come out of reset.

    Args:
        device: Serial port device path.
        config: Link configuration (baud rate and reset delay are used).

    Returns:
        Ready-to-use SerialTransport with empty buffers.
    """
    config = config or LinkConfig()
    transport = SerialTransport(open_serial_port(device, config.baud_rate))

    if config.reset_delay:
        logger.debug("Waiting %.1fs for board reset", config.reset_delay)
        time.sleep(config.reset_delay)
    transport.discard()

    return transport
