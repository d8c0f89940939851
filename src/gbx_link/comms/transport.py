"""
Transport Abstractions
======================

The protocol code never touches a serial port directly. It talks to a
`Transport`, checks a `CancelToken`, and measures time with a `Deadline`.

Transport Contract
------------------
- ``read(size)`` is non-blocking: it returns up to ``size`` bytes, and an
  empty result means "no data yet", never end-of-file.
- ``write(data)`` returns the number of bytes actually written.
- ``discard()`` drops any buffered unread (and unsent) bytes. It is called
  before every new request so that leftovers from an aborted exchange
  cannot be mistaken for the next frame.

Timing
------
All waits use a *sliding* deadline: it restarts every time at least one
byte moves, and only an entirely silent timeout window counts as a stall.
Clock and sleep functions are injectable so the state machines can run
against a simulated clock.
"""

import threading
import time
from typing import Callable, Optional, Protocol, runtime_checkable

# Clock returning seconds (monotonic)
Clock = Callable[[], float]

# Sleep function taking seconds
Sleep = Callable[[float], None]


@runtime_checkable
class Transport(Protocol):
    """Byte channel to the device."""

    def read(self, size: int) -> bytes:
        ...

    def write(self, data: bytes) -> int:
        ...

    def discard(self) -> None:
        ...

    def close(self) -> None:
        ...


class CancelToken:
    """
    Cooperative cancellation flag.

    One token is passed explicitly to every state machine and transfer
    loop, which poll it on each iteration. Setting it from a signal handler
    or another thread makes the running operation unwind promptly with
    CancelledError.

    Example:
        token = CancelToken()
        signal.signal(signal.SIGINT, lambda *_: token.cancel())
        client = CartridgeClient(transport, cancel=token)
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        """Return True once cancel() has been called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation of the running operation."""
        self._event.set()

    def reset(self) -> None:
        """Clear the flag so the token can be reused for the next operation."""
        self._event.clear()

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled})"


class Deadline:
    """
    Sliding deadline.

    The deadline is armed at construction. `touch()` pushes it forward to
    "now + timeout" and is called whenever bytes move; `expired` is only
    consulted when a read comes back empty.
    """

    def __init__(self, timeout: float, clock: Clock = time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._expires_at = clock() + timeout

    def touch(self) -> None:
        """Restart the timeout window."""
        self._expires_at = self._clock() + self.timeout

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    @property
    def remaining(self) -> float:
        """Seconds left in the current window (never negative)."""
        return max(0.0, self._expires_at - self._clock())


def is_cancelled(cancel: Optional[CancelToken]) -> bool:
    """Return True if a token was given and has been set."""
    return cancel is not None and cancel.cancelled
