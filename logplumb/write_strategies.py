"""Strategies that write generated messages at a steady rate or in bursts."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass
from typing import Callable, Optional

MessageGenerator = Callable[[], bytes]
MessageWriter = Callable[[bytes], None]


class _Loop:
    def __init__(self) -> None:
        self._stop_requested = threading.Event()
        self._done = threading.Event()
        self._running = False
        self._lock = threading.Lock()

    def _run(self, interval: float, tick: Callable[[], None]) -> None:
        with self._lock:
            if self._running:
                raise RuntimeError("writer already started")
            self._running = True
        try:
            while not self._stop_requested.wait(interval):
                tick()
        finally:
            self._done.set()

    def _halt(self) -> None:
        self._stop_requested.set()
        with self._lock:
            running = self._running
        if running:
            self._done.wait()


class ConstantWriteStrategy(_Loop):
    """Writes one generated message ``write_rate`` times a second."""

    def __init__(self, generator: MessageGenerator, writer: MessageWriter, write_rate: int) -> None:
        if write_rate <= 0:
            raise ValueError(f"write rate must be positive, got {write_rate}")
        super().__init__()
        self._generator = generator
        self._writer = writer
        self._interval = 1.0 / write_rate

    def start_writer(self) -> None:
        """Write messages until ``stop`` is called."""
        self._run(self._interval, lambda: self._writer(self._generator()))

    def stop(self) -> None:
        """Stop the writer and wait until it has returned."""
        self._halt()


@dataclass(frozen=True)
class BurstParameters:
    """Burst sizes range from ``minimum`` up to, not including, ``maximum``
    (exactly ``minimum`` when equal); one burst every ``frequency`` seconds."""

    minimum: int
    maximum: int
    frequency: float


def _burst_size(minimum: int, maximum: int, rng: random.Random) -> int:
    if minimum == maximum:
        return minimum
    if maximum < minimum:
        raise ValueError(f"burst maximum {maximum} is below minimum {minimum}")
    return minimum + rng.randrange(maximum - minimum)


class BurstWriteStrategy(_Loop):
    """Writes a burst of generated messages every ``frequency`` seconds."""

    def __init__(
        self,
        generator: MessageGenerator,
        writer: MessageWriter,
        params: BurstParameters,
        rng: Optional[random.Random] = None,
    ) -> None:
        if params.maximum < params.minimum:
            raise ValueError(
                f"burst maximum {params.maximum} is below minimum {params.minimum}"
            )
        if params.frequency <= 0:
            raise ValueError(f"burst frequency must be positive, got {params.frequency}")
        super().__init__()
        self._generator = generator
        self._writer = writer
        self._params = params
        self._rng = rng if rng is not None else random.Random()

    def _burst(self) -> None:
        for _ in range(_burst_size(self._params.minimum, self._params.maximum, self._rng)):
            self._writer(self._generator())

    def start_writer(self) -> None:
        """Write bursts until ``stop`` is called."""
        self._run(self._params.frequency, self._burst)

    def stop(self) -> None:
        """Stop the writer and wait until it has returned."""
        self._halt()