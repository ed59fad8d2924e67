"""Ring-buffer diodes that never block writers.

A diode keeps the most recent ``size`` items. When the writer laps the
reader, the oldest unread items are overwritten. The next read reports
how many were lost to the alerter.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

Alerter = Callable[[int], None]

_EMPTY = object()


class Diode(Generic[T]):
    """Fixed-size ring buffer that drops old data instead of blocking."""

    def __init__(self, size: int, alerter: Optional[Alerter] = None) -> None:
        if size <= 0:
            raise ValueError(f"diode size must be positive, got {size}")
        self._size = size
        self._alerter = alerter
        self._buckets: list[Optional[tuple[int, Any]]] = [None] * size
        self._write_index = 0
        self._read_index = 0
        self._cond = threading.Condition()

    def _prepare(self, data: Any) -> T:
        return data

    def set(self, data: T) -> None:
        """Insert ``data``, overwriting the oldest item if the buffer is full."""
        if data is None:
            raise ValueError("a diode cannot hold None")
        item = self._prepare(data)
        with self._cond:
            seq = self._write_index
            self._buckets[seq % self._size] = (seq, item)
            self._write_index += 1
            self._cond.notify_all()

    def _take(self) -> tuple[Any, int]:
        """Pop the next item under the lock; returns (item or _EMPTY, dropped)."""
        idx = self._read_index % self._size
        bucket = self._buckets[idx]
        if bucket is None:
            return _EMPTY, 0
        seq, item = bucket
        if seq < self._read_index:
            return _EMPTY, 0
        dropped = seq - self._read_index
        self._buckets[idx] = None
        self._read_index = seq + 1
        return item, dropped

    def _alert(self, dropped: int) -> None:
        if dropped > 0 and self._alerter is not None:
            self._alerter(dropped)

    def try_next(self) -> Optional[T]:
        """Return the next item, or None if the diode is empty."""
        with self._cond:
            item, dropped = self._take()
        self._alert(dropped)
        return None if item is _EMPTY else item

    def next(self) -> T:
        """Return the next item, blocking until one is available."""
        with self._cond:
            while True:
                item, dropped = self._take()
                if item is not _EMPTY:
                    break
                self._cond.wait()
        self._alert(dropped)
        return item


class _ByteDiode(Diode[bytes]):
    def _prepare(self, data: Any) -> bytes:
        return bytes(data)


class ManyToOne(_ByteDiode):
    """Diode of byte strings for many writers and a single reader."""


class OneToOne(_ByteDiode):
    """Diode of byte strings for a single writer and a single reader."""


class ManyToOneEnvelope(Diode[Any]):
    """Diode of V1 envelopes for many writers and a single reader."""


class ManyToOneEnvelopeV2(Diode[Any]):
    """Diode of V2 envelopes for many writers and a single reader."""


class OneToOneEnvelopeV2(Diode[Any]):
    """Diode of V2 envelopes for a single writer and a single reader."""