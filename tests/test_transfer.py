"""
Tests for the Bulk Transfer Engine
==================================

Covers the three payload movers:
- receive_into_buffer: capacity checks, stalls, cancellation
- receive_into_sink: chunk bounds, sink failures
- send_from_source: chunking, pacing, short sources and writes
"""

from io import BytesIO

import pytest

from gbx_link.comms.transfer import (
    receive_into_buffer,
    receive_into_sink,
    send_from_source,
)
from gbx_link.comms.transport import CancelToken
from gbx_link.config import LinkConfig
from gbx_link.errors import (
    CancelledError,
    CapacityError,
    ShortReadError,
    ShortSourceError,
    ShortWriteError,
    SinkWriteError,
    TimeoutError,
)

from conftest import FakeTransport


class RecordingSink(BytesIO):
    """BytesIO that remembers the size of every write."""

    def __init__(self):
        super().__init__()
        self.chunks = []

    def write(self, data):
        self.chunks.append(len(data))
        return super().write(data)


class OverDeliveringTransport(FakeTransport):
    """Ignores the requested size and hands out whole script items."""

    def read(self, size):
        return super().read(1 << 16)


class ShortSink:
    def write(self, data):
        return len(data) - 1


class BrokenSink:
    def write(self, data):
        raise OSError("No space left on device")


def loop_kwargs(clock, cancel=None, config=None):
    return {
        "cancel": cancel,
        "config": config or LinkConfig(),
        "clock": clock.time,
        "sleep": clock.sleep,
    }


# =============================================================================
# receive_into_buffer
# =============================================================================

class TestReceiveIntoBuffer:
    """Tests for receiving into a fixed buffer."""

    def test_exact_payload(self, clock):
        transport = FakeTransport([b"HELLO"])
        buffer = bytearray(32)
        count = receive_into_buffer(transport, 5, buffer, **loop_kwargs(clock))
        assert count == 5
        assert buffer[:5] == b"HELLO"

    def test_payload_in_pieces(self, clock):
        transport = FakeTransport([b"AB", None, b"C", None, None, b"DE"])
        buffer = bytearray(5)
        receive_into_buffer(transport, 5, buffer, **loop_kwargs(clock))
        assert buffer == bytearray(b"ABCDE")

    def test_never_reads_past_length(self, clock):
        """Bytes beyond the declared length stay in the transport."""
        transport = FakeTransport([b"ABCDEFGH"])
        buffer = bytearray(8)
        receive_into_buffer(transport, 3, buffer, **loop_kwargs(clock))
        assert buffer[:3] == b"ABC"
        assert bytes(transport.script[0]) == b"DEFGH"

    def test_zero_length(self, clock):
        transport = FakeTransport([b"X"])
        assert receive_into_buffer(transport, 0, bytearray(4), **loop_kwargs(clock)) == 0
        assert transport.reads == 0

    def test_capacity_exceeded(self, clock):
        """An oversized payload is rejected before any byte is read."""
        transport = FakeTransport([bytes(40)])
        buffer = bytearray(32)
        with pytest.raises(CapacityError) as exc_info:
            receive_into_buffer(transport, 40, buffer, 32, **loop_kwargs(clock))
        assert exc_info.value.length == 40
        assert exc_info.value.capacity == 32
        assert transport.reads == 0
        assert buffer == bytearray(32)

    @pytest.mark.parametrize("length", [0, 1, 31, 32])
    def test_byte_at_a_time(self, clock, length):
        """Any length up to capacity arrives intact one byte per read."""
        payload = bytes(range(1, length + 1))
        transport = FakeTransport([payload], max_chunk=1)
        buffer = bytearray(32)
        assert receive_into_buffer(transport, length, buffer, 32, **loop_kwargs(clock)) == length
        assert buffer[:length] == payload
        assert buffer[length:] == bytearray(32 - length)
        assert transport.reads == length

    def test_over_delivering_transport(self, clock):
        """A read returning more than asked for never writes past capacity."""
        buffer = bytearray(b"\xaa" * 8)
        with pytest.raises(CapacityError):
            receive_into_buffer(
                OverDeliveringTransport([b"ABCDEF"]), 4, buffer, 4, **loop_kwargs(clock)
            )
        assert buffer == bytearray(b"\xaa" * 8)

    def test_capacity_smaller_than_buffer(self, clock):
        with pytest.raises(CapacityError):
            receive_into_buffer(FakeTransport(), 10, bytearray(32), 8, **loop_kwargs(clock))

    def test_capacity_larger_than_buffer(self, clock):
        with pytest.raises(ValueError):
            receive_into_buffer(FakeTransport(), 4, bytearray(4), 8, **loop_kwargs(clock))

    def test_stall_raises_short_read(self, clock):
        """Silence for a whole timeout window fails with what was moved."""
        config = LinkConfig(timeout=3.0, poll_interval=0.01)
        transport = FakeTransport([b"ABC"])
        with pytest.raises(ShortReadError) as exc_info:
            receive_into_buffer(transport, 10, bytearray(10), **loop_kwargs(clock, config=config))
        error = exc_info.value
        assert error.expected == 10
        assert error.transferred == 3
        assert error.missing == 7
        assert isinstance(error, TimeoutError)
        assert 3.0 <= clock.now <= 3.0 + 0.01 + 1e-9

    def test_deadline_slides(self, clock):
        gap = [None] * 200  # 2 s each
        transport = FakeTransport([b"A"] + gap + [b"B"] + gap + [b"C"])
        buffer = bytearray(3)
        receive_into_buffer(transport, 3, buffer, **loop_kwargs(clock))
        assert buffer == bytearray(b"ABC")
        assert clock.now > 3.9

    def test_progress(self, clock):
        transport = FakeTransport([b"AB", b"CD", b"E"])
        calls = []
        receive_into_buffer(
            transport, 5, bytearray(5), None, lambda t, r: calls.append((t, r)),
            **loop_kwargs(clock),
        )
        assert calls == [(5, 3), (5, 1), (5, 0)]

    def test_cancel_mid_transfer(self, clock):
        token = CancelToken()
        transport = FakeTransport([b"A", b"B", b"C", b"D"])
        transport.on_read = lambda t: token.cancel() if t.reads == 2 else None
        with pytest.raises(CancelledError) as exc_info:
            receive_into_buffer(transport, 4, bytearray(4), **loop_kwargs(clock, token))
        assert exc_info.value.expected == 4
        assert exc_info.value.transferred == 2


# =============================================================================
# receive_into_sink
# =============================================================================

class TestReceiveIntoSink:
    """Tests for streaming into a file-like sink."""

    def test_streams_full_payload(self, clock):
        payload = bytes(range(256)) * 8
        transport = FakeTransport([payload])
        sink = RecordingSink()
        count = receive_into_sink(transport, len(payload), sink, **loop_kwargs(clock))
        assert count == len(payload)
        assert sink.getvalue() == payload

    def test_reads_are_bounded_by_chunk_size(self, clock):
        """No read asks for more than 512 bytes, and the last one asks for the rest."""
        payload = bytes(1300)
        transport = FakeTransport([payload])
        sink = RecordingSink()
        receive_into_sink(transport, 1300, sink, **loop_kwargs(clock))
        assert transport.read_sizes == [512, 512, 276]
        assert sink.chunks == [512, 512, 276]

    def test_custom_chunk_size(self, clock):
        config = LinkConfig(recv_chunk_size=100)
        transport = FakeTransport([bytes(250)])
        sink = RecordingSink()
        receive_into_sink(transport, 250, sink, **loop_kwargs(clock, config=config))
        assert max(transport.read_sizes) <= 100

    def test_never_reads_past_length(self, clock):
        transport = FakeTransport([b"ABCDEF"])
        sink = BytesIO()
        receive_into_sink(transport, 4, sink, **loop_kwargs(clock))
        assert sink.getvalue() == b"ABCD"
        assert bytes(transport.script[0]) == b"EF"

    def test_empty_read_uses_sink_poll_interval(self, clock):
        transport = FakeTransport([None, b"AB"])
        receive_into_sink(transport, 2, BytesIO(), **loop_kwargs(clock))
        assert clock.sleeps == [0.005]

    def test_stall_raises_short_read(self, clock):
        transport = FakeTransport([bytes(600)])
        with pytest.raises(ShortReadError) as exc_info:
            receive_into_sink(transport, 1000, BytesIO(), **loop_kwargs(clock))
        assert exc_info.value.transferred == 600

    def test_short_sink_write(self, clock):
        transport = FakeTransport([bytes(10)])
        with pytest.raises(SinkWriteError):
            receive_into_sink(transport, 10, ShortSink(), **loop_kwargs(clock))

    def test_sink_oserror(self, clock):
        transport = FakeTransport([bytes(10)])
        with pytest.raises(SinkWriteError, match="No space left"):
            receive_into_sink(transport, 10, BrokenSink(), **loop_kwargs(clock))

    def test_progress_ends_at_zero(self, clock):
        transport = FakeTransport([bytes(1024)])
        calls = []
        receive_into_sink(
            transport, 1024, BytesIO(), lambda t, r: calls.append((t, r)),
            **loop_kwargs(clock),
        )
        assert calls == [(1024, 512), (1024, 0)]

    def test_cancel_mid_transfer(self, clock):
        """Cancellation stops the dump promptly with the byte count so far."""
        token = CancelToken()
        transport = FakeTransport([bytes(4096)])
        transport.on_read = lambda t: token.cancel() if t.reads == 3 else None
        sink = BytesIO()
        with pytest.raises(CancelledError) as exc_info:
            receive_into_sink(transport, 4096, sink, **loop_kwargs(clock, token))
        assert exc_info.value.transferred == 1536
        assert len(sink.getvalue()) == 1536
        assert transport.reads == 3


# =============================================================================
# send_from_source
# =============================================================================

class TestSendFromSource:
    """Tests for pacing a source out to the device."""

    def test_sends_in_32_byte_chunks(self, clock):
        data = bytes(range(256)) * 4
        transport = FakeTransport()
        sent = send_from_source(
            transport, BytesIO(data), len(data),
            cancel=None, config=LinkConfig(), sleep=clock.sleep,
        )
        assert sent == 1024
        assert bytes(transport.written) == data
        assert [len(w) for w in transport.writes] == [32] * 32

    def test_pause_after_every_chunk(self, clock):
        transport = FakeTransport()
        send_from_source(
            transport, BytesIO(bytes(128)), 128,
            config=LinkConfig(), sleep=clock.sleep,
        )
        assert clock.sleeps == [0.01] * 4

    def test_last_chunk_may_be_short(self, clock):
        transport = FakeTransport()
        send_from_source(transport, BytesIO(bytes(70)), 70, sleep=clock.sleep)
        assert [len(w) for w in transport.writes] == [32, 32, 6]

    def test_sends_only_total_length(self, clock):
        transport = FakeTransport()
        source = BytesIO(b"A" * 64 + b"B" * 64)
        send_from_source(transport, source, 64, sleep=clock.sleep)
        assert bytes(transport.written) == b"A" * 64

    def test_short_source(self, clock):
        transport = FakeTransport()
        with pytest.raises(ShortSourceError) as exc_info:
            send_from_source(transport, BytesIO(bytes(40)), 64, sleep=clock.sleep)
        assert exc_info.value.offset == 32
        assert exc_info.value.wanted == 32
        assert exc_info.value.got == 8
        assert len(transport.written) == 32

    def test_short_transport_write(self, clock):
        transport = FakeTransport()
        transport.write_limit = 10
        with pytest.raises(ShortWriteError) as exc_info:
            send_from_source(transport, BytesIO(bytes(64)), 64, sleep=clock.sleep)
        assert exc_info.value.expected == 64
        assert exc_info.value.transferred == 10

    def test_progress(self, clock):
        calls = []
        send_from_source(
            FakeTransport(), BytesIO(bytes(64)), 64,
            lambda t, r: calls.append((t, r)), sleep=clock.sleep,
        )
        assert calls == [(64, 32), (64, 0)]

    def test_cancel_mid_transfer(self, clock):
        token = CancelToken()
        transport = FakeTransport()
        calls = []

        def progress(total, remaining):
            calls.append(remaining)
            if len(calls) == 2:
                token.cancel()

        with pytest.raises(CancelledError) as exc_info:
            send_from_source(
                transport, BytesIO(bytes(256)), 256, progress,
                cancel=token, sleep=clock.sleep,
            )
        assert exc_info.value.transferred == 64
        assert len(transport.written) == 64
