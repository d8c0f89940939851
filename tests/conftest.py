"""
Shared Test Fixtures
====================

Fakes used across the test suite:

- FakeClock: simulated monotonic clock whose sleep() advances time
- FakeTransport: scripted byte stream, records everything written
- FakeDevice: a cartridge reader simulator that answers requests

No test in this suite touches a real serial port or sleeps for real.
"""

import struct
from collections import deque
from typing import Callable, Optional

import pytest

from gbx_link.cartridge import CartridgeMetadata, encode_metadata
from gbx_link.comms.framing import Command, RequestPacket, encode_response_header
from gbx_link.config import LinkConfig


class FakeClock:
    """Simulated clock. sleep() only moves time forward."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    @property
    def slept(self) -> float:
        return sum(self.sleeps)


class FakeTransport:
    """
    Scripted transport.

    The script is a list of items consumed by read(): bytes are delivered
    (split across reads if larger than the requested size), None produces
    one empty read. Once the script is exhausted every read is empty.
    """

    def __init__(self, script=(), max_chunk: Optional[int] = None):
        self.script = deque(script)
        self.max_chunk = max_chunk
        self.written = bytearray()
        self.writes: list[bytes] = []
        self.read_sizes: list[int] = []
        self.reads = 0
        self.discards = 0
        self.closed = False
        self.write_limit: Optional[int] = None
        self.on_read: Optional[Callable[["FakeTransport"], None]] = None

    def feed(self, *items) -> None:
        self.script.extend(items)

    def read(self, size: int) -> bytes:
        self.reads += 1
        self.read_sizes.append(size)
        if self.on_read:
            self.on_read(self)
        if not self.script:
            return b""
        item = self.script.popleft()
        if item is None:
            return b""
        limit = size if self.max_chunk is None else min(size, self.max_chunk)
        data, rest = item[:limit], item[limit:]
        if rest:
            self.script.appendleft(rest)
        return bytes(data)

    def write(self, data: bytes) -> int:
        data = bytes(data)
        if self.write_limit is not None:
            data = data[:self.write_limit]
        self.writes.append(data)
        self.written.extend(data)
        return len(data)

    def discard(self) -> None:
        self.discards += 1

    def close(self) -> None:
        self.closed = True


class FakeDevice(FakeTransport):
    """
    Cartridge reader simulator.

    Answers every request packet with a framed reply built from its
    header, ROM and RAM contents. After WRITE_RAM it absorbs the next
    `ram_size` written bytes as the new RAM image.
    """

    def __init__(
        self,
        header: bytes = b"",
        rom: bytes = b"",
        ram: bytes = b"",
        ram_size: Optional[int] = None,
        noise: bytes = b"",
        max_chunk: Optional[int] = None,
    ):
        super().__init__(max_chunk=max_chunk)
        self.header = header
        self.rom = rom
        self.ram = ram
        self.ram_size = len(ram) if ram_size is None else ram_size
        self.noise = noise
        self.requests: list[Command] = []
        self.corrupt_next_write = False
        self._incoming = bytearray()
        self._incoming_remaining = 0

    def write(self, data: bytes) -> int:
        data = bytes(data)
        self.writes.append(data)
        self.written.extend(data)

        if self._incoming_remaining:
            taken = data[:self._incoming_remaining]
            self._incoming.extend(taken)
            self._incoming_remaining -= len(taken)
            if not self._incoming_remaining:
                image = bytearray(self._incoming)
                if self.corrupt_next_write and image:
                    image[len(image) // 2] ^= 0xFF
                self.ram = bytes(image)
            return len(data)

        command = RequestPacket.from_bytes(data).command
        self.requests.append(command)
        self._respond(command)
        return len(data)

    def discard(self) -> None:
        super().discard()
        self.script.clear()

    def _respond(self, command: Command) -> None:
        if command == Command.WRITE_RAM:
            self._incoming = bytearray()
            self._incoming_remaining = self.ram_size
            return

        payload = {
            Command.READ_HEADER: lambda: self.header,
            Command.READ_ROM: lambda: self.rom,
            Command.READ_RAM: lambda: self.ram,
            Command.GET_RAM_SIZE: lambda: struct.pack(">I", self.ram_size),
        }[command]()
        self.feed(self.noise + encode_response_header(len(payload)) + payload)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return LinkConfig()


@pytest.fixture
def fast_config():
    """Configuration with every pause removed, for CLI runs on real time."""
    return LinkConfig(
        poll_interval=0,
        sink_poll_interval=0,
        send_chunk_delay=0,
        request_settle_delay=0,
        write_settle_delay=0,
        reset_delay=0,
        timeout=0.5,
    )


@pytest.fixture
def pokemon():
    return CartridgeMetadata(
        title="POKEMON RED",
        cartridge_type=0x13,
        rom_size=0x05,
        ram_size=0x03,
        version=1,
        checksum_valid=True,
    )


@pytest.fixture
def pokemon_header(pokemon):
    return encode_metadata(pokemon)


@pytest.fixture
def device(pokemon_header):
    """Reader with a small cartridge: 2 KiB ROM and 8 KiB RAM."""
    rom = bytes(i % 251 for i in range(2048))
    ram = bytes((i * 7) % 256 for i in range(8192))
    return FakeDevice(header=pokemon_header, rom=rom, ram=ram)
