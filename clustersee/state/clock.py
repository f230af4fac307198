"""Time sources for the job store, poller and change detection.

Components never call ``time`` directly. They take a ``Clock`` so that
history windows, debounce periods and freshness stamps can be driven from
tests without sleeping.

Example usage:
    clock = FrozenClock(1_700_000_000.0)
    store = JobStore(clock=clock)
    clock.advance(30.0)
"""

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can report wall and monotonic time."""

    def now(self) -> float:
        """Wall-clock seconds since the epoch, used for job timestamps."""
        ...

    def monotonic(self) -> float:
        """Seconds on a clock that never jumps, used for intervals."""
        ...


class SystemClock:
    """The real clock."""

    def now(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()


class FrozenClock:
    """A clock that stands still until moved.

    Example:
        clock = FrozenClock(1_700_000_000.0, frozen_monotonic=100.0)
        clock.advance(0.5)
        assert clock.monotonic() == 100.5
    """

    def __init__(
        self,
        frozen_time: float | None = None,
        frozen_monotonic: float | None = None,
    ) -> None:
        """
        Args:
            frozen_time: Wall time to report; the current time if omitted.
            frozen_monotonic: Monotonic value to report; 0.0 if omitted.
        """
        self._wall = time.time() if frozen_time is None else frozen_time
        self._tick = 0.0 if frozen_monotonic is None else frozen_monotonic

    def now(self) -> float:
        return self._wall

    def monotonic(self) -> float:
        return self._tick

    def advance(self, seconds: float) -> None:
        """Let ``seconds`` pass on both clocks."""
        self._wall += seconds
        self._tick += seconds

    def set_time(self, timestamp: float) -> None:
        """Jump wall time to ``timestamp``; monotonic time is unaffected."""
        self._wall = timestamp


_default_clock: Clock = SystemClock()


def get_clock() -> Clock:
    """Clock used by components that were not given one."""
    return _default_clock


def set_clock(clock: Clock) -> None:
    """Install ``clock`` as the process default, typically from a test."""
    global _default_clock
    _default_clock = clock


def reset_clock() -> None:
    """Go back to the real clock."""
    set_clock(SystemClock())
