"""Call pacing for the remote catalog reader.

Keeps consecutive calls at least ``min_interval`` seconds apart by blocking
the caller. The clock and sleep functions are injectable so pacing can be
tested without real waiting.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import TypeVar

T = TypeVar("T")


@dataclass
class Pacer:
    """Minimum-interval pacer.

    - ``wait()`` blocks until ``min_interval`` has passed since the last
      recorded call, then records the current time
    - ``mark()`` records a call without waiting
    - the first call never waits
    """

    min_interval: float
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    _last_call: float | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def wait_time(self) -> float:
        """Seconds until the next call is allowed (0 if allowed now)."""
        with self._lock:
            if self._last_call is None or self.min_interval <= 0:
                return 0.0
            elapsed = self.clock() - self._last_call
            return max(0.0, self.min_interval - elapsed)

    def wait(self) -> float:
        """Block until the next call is allowed.

        Returns:
            Seconds slept
        """
        delay = self.wait_time()
        if delay > 0:
            self.sleep(delay)
        self.mark()
        return delay

    def mark(self) -> None:
        with self._lock:
            self._last_call = self.clock()


def paced(items: Iterable[T], pacer: Pacer) -> Iterator[T]:
    """Yield items no faster than the pacer allows.

    The wait happens after an item is pulled and before it is handed out, so
    exhausting the iterable never costs a trailing delay.
    """
    for item in items:
        pacer.wait()
        yield item


class FakeClock:
    """Deterministic clock for tests: sleeping advances time instantly."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


## Tests


def test_pacer_first_call_does_not_wait():
    clock = FakeClock()
    pacer = Pacer(1.0, clock=clock, sleep=clock.sleep)

    assert pacer.wait() == 0.0
    assert clock.sleeps == []


def test_pacer_enforces_min_interval():
    clock = FakeClock()
    pacer = Pacer(1.0, clock=clock, sleep=clock.sleep)

    pacer.wait()
    clock.advance(0.25)
    slept = pacer.wait()

    assert abs(slept - 0.75) < 1e-9
    assert abs(clock.now - 1.0) < 1e-9


def test_pacer_no_wait_after_interval_elapsed():
    clock = FakeClock()
    pacer = Pacer(1.1, clock=clock, sleep=clock.sleep)

    pacer.mark()
    clock.advance(2.0)
    assert pacer.wait_time() == 0.0


def test_paced_spaces_items():
    clock = FakeClock()
    pacer = Pacer(1.0, clock=clock, sleep=clock.sleep)
    seen: list[tuple[str, float]] = []

    for item in paced(["a", "b", "c"], pacer):
        seen.append((item, clock.now))

    assert [s[0] for s in seen] == ["a", "b", "c"]
    assert [s[1] for s in seen] == [0.0, 1.0, 2.0]


def test_paced_zero_interval_never_sleeps():
    clock = FakeClock()
    pacer = Pacer(0.0, clock=clock, sleep=clock.sleep)

    assert list(paced(range(5), pacer)) == [0, 1, 2, 3, 4]
    assert clock.sleeps == []
