"""Batching of V2 envelopes by size and time."""

from __future__ import annotations

import time
from typing import Callable, List

from logplumb.metrics import Envelope

V2EnvelopeWriter = Callable[[List[Envelope]], None]


class V2EnvelopeBatcher:
    """Collects envelopes and hands them to a writer in batches.

    A batch is written when it reaches ``size`` envelopes, or on ``flush``
    once ``interval`` seconds have passed since the last write. Not thread
    safe: ``write`` and ``flush`` must be called from the same thread.
    """

    def __init__(self, size: int, interval: float, writer: V2EnvelopeWriter) -> None:
        if size <= 0:
            raise ValueError(f"batch size must be positive, got {size}")
        self._size = size
        self._interval = interval
        self._writer = writer
        self._batch: List[Envelope] = []
        self._last_flush = time.monotonic()

    def write(self, data: Envelope) -> None:
        """Add ``data`` to the batch, writing the batch if it is full."""
        self._batch.append(data)
        if len(self._batch) >= self._size:
            self._write_batch()

    def flush(self) -> None:
        """Write a partial batch if the interval has lapsed."""
        if self._batch and time.monotonic() - self._last_flush >= self._interval:
            self._write_batch()

    def _write_batch(self) -> None:
        batch, self._batch = self._batch, []
        self._last_flush = time.monotonic()
        self._writer(batch)