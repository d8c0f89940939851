"""
GBx Link - Configuration
========================

Link tuning values: timeouts, chunk sizes and pacing delays. These are
tied to the serial throughput and to how fast the Arduino firmware drains
its receive buffer, not to the wire protocol itself, so they are all
configurable. Configuration can come from:
- Default values (defined here)
- Environment variables (GBX_*)
- Explicit overrides (CLI options)

Reference timings observed against the arduino-cartridge-rw firmware:
- 3 s without a single byte means the device is gone
- 32-byte writes with a 10 ms pause keep the device from dropping bytes
- 512-byte reads keep up with 500000 baud
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Final

logger = logging.getLogger(__name__)

# Serial speed the firmware is built for
DEFAULT_BAUD_RATE: Final[int] = 500000

# Header payload buffer size used by the reference host
METADATA_CAPACITY: Final[int] = 32


@dataclass(frozen=True)
class LinkConfig:
    """
    Tuning values for one serial link.

    Attributes:
        baud_rate: Serial speed (default: 500000)
        timeout: Sliding deadline in seconds (default: 3.0)
        poll_interval: Sleep after an empty read into a buffer (default: 10 ms)
        sink_poll_interval: Sleep after an empty read into a sink (default: 5 ms)
        recv_chunk_size: Maximum bytes read per iteration when streaming
        send_chunk_size: Bytes written per iteration when sending
        send_chunk_delay: Pause after every sent chunk (default: 10 ms)
        request_settle_delay: Pause between a read request and its header
        write_settle_delay: Pause between WRITE_RAM and the first data chunk
        reset_delay: Wait after opening the port (the Arduino resets on open)
        metadata_capacity: Buffer size for the header payload
        resync_on_bad_stx: Keep searching when DLE is not followed by STX
    """

    # ═══════════════════════════════════════════════════════════════════════════
    # LINK
    # ═══════════════════════════════════════════════════════════════════════════

    baud_rate: int = DEFAULT_BAUD_RATE
    timeout: float = 3.0

    # ═══════════════════════════════════════════════════════════════════════════
    # POLLING AND PACING (seconds)
    # ═══════════════════════════════════════════════════════════════════════════

    poll_interval: float = 0.01
    sink_poll_interval: float = 0.005
    send_chunk_delay: float = 0.01
    request_settle_delay: float = 0.01
    write_settle_delay: float = 0.05
    reset_delay: float = 1.2

    # ═══════════════════════════════════════════════════════════════════════════
    # SIZES (bytes)
    # ═══════════════════════════════════════════════════════════════════════════

    recv_chunk_size: int = 512
    send_chunk_size: int = 32
    metadata_capacity: int = METADATA_CAPACITY

    # ═══════════════════════════════════════════════════════════════════════════
    # FRAMING
    # ═══════════════════════════════════════════════════════════════════════════

    resync_on_bad_stx: bool = False

    def __post_init__(self) -> None:
        if self.baud_rate <= 0:
            raise ValueError(f"Baud rate must be positive, got {self.baud_rate}")
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")
        for name in ("recv_chunk_size", "send_chunk_size", "metadata_capacity"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        for name in (
            "poll_interval",
            "sink_poll_interval",
            "send_chunk_delay",
            "request_settle_delay",
            "write_settle_delay",
            "reset_delay",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative, got {getattr(self, name)}")

    # ═══════════════════════════════════════════════════════════════════════════
    # FACTORY METHODS
    # ═══════════════════════════════════════════════════════════════════════════

    @classmethod
    def from_env(cls) -> "LinkConfig":
        """
        Create a LinkConfig from environment variables.

        Every field can be set with GBX_<FIELD NAME IN UPPER CASE>, e.g.
        GBX_TIMEOUT=5 or GBX_SEND_CHUNK_SIZE=64. Unparseable values are
        ignored with a warning.

        Returns:
            LinkConfig with values from the environment
        """
        overrides = {}
        for f in fields(cls):
            raw = os.environ.get(f"GBX_{f.name.upper()}")
            if raw is None:
                continue
            try:
                overrides[f.name] = _parse_value(f.type, raw)
            except ValueError:
                logger.warning("Ignoring invalid GBX_%s=%r", f.name.upper(), raw)
        return cls(**overrides)

    def with_overrides(self, **kwargs) -> "LinkConfig":
        """Return a copy with the given fields replaced (None values are skipped)."""
        changes = {k: v for k, v in kwargs.items() if v is not None}
        return replace(self, **changes)


def _parse_value(type_, raw: str):
    """Convert an environment string to the field's type."""
    if type_ in (bool, "bool"):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(raw)
    if type_ in (int, "int"):
        return int(raw)
    return float(raw)
