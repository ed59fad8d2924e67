"""Running average of envelope sizes reported on an interval."""

from __future__ import annotations

import threading
from typing import Callable, Optional

_COUNT_MASK = 0xFFFF
_TOTAL_MASK = 0x0000FFFFFFFFFFFF
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


class EnvelopeAverager:
    """Tracks envelope counts and byte totals and reports per-interval averages.

    The count is kept in 16 bits and the total in 48 bits, both wrapping on
    overflow; differences are taken with the same wrap-around.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0
        self._total = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def track(self, count: int, size: int) -> None:
        """Add ``count`` envelopes totalling ``size`` bytes."""
        with self._lock:
            self._count = (self._count + count) & _COUNT_MASK
            self._total = (self._total + size) & _TOTAL_MASK

    def _snapshot(self) -> tuple[int, int]:
        with self._lock:
            return self._count, self._total

    def start(self, interval: float, callback: Callable[[float], None]) -> None:
        """Call ``callback`` every ``interval`` seconds with the average size."""
        if self._thread is not None:
            raise RuntimeError("averager already started")
        self._stop.clear()

        def run() -> None:
            prev_count = 0
            prev_total = 0
            while not self._stop.wait(interval):
                count, total = self._snapshot()
                delta_count = (count - prev_count) & _COUNT_MASK
                delta_total = (total - prev_total) & _UINT64_MASK
                prev_count, prev_total = count, total
                if delta_count == 0:
                    callback(0.0)
                    continue
                callback(delta_total / delta_count)

        self._thread = threading.Thread(target=run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop reporting averages."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None