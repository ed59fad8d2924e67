"""Counter and gauge metrics that render themselves as V2 envelopes."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, TypeVar

_UINT64_MASK = 0xFFFFFFFFFFFFFFFF
_PRECISION = 2

MetricOption = Callable[[Dict[str, str]], None]
R = TypeVar("R")


@dataclass
class CounterMessage:
    """Counter payload of an envelope."""

    name: str
    delta: int = 0
    total: int = 0


@dataclass
class GaugeValue:
    """One named value of a gauge payload."""

    unit: str
    value: float


@dataclass
class EventMessage:
    """Event payload of an envelope."""

    title: str
    body: str


@dataclass
class Envelope:
    """A V2 envelope carrying one counter, gauge or event payload."""

    source_id: str = ""
    timestamp: int = 0
    counter: Optional[CounterMessage] = None
    gauge: Optional[Dict[str, GaugeValue]] = None
    event: Optional[EventMessage] = None
    deprecated_tags: Dict[str, str] = field(default_factory=dict)


def with_tags(tags: Dict[str, str]) -> MetricOption:
    """Option that adds ``tags`` to the metric's envelope tags."""
    captured = dict(tags)

    def apply(metric_tags: Dict[str, str]) -> None:
        metric_tags.update(captured)

    return apply


def with_version(major: int, minor: int) -> MetricOption:
    """Option that sets the ``metric_version`` tag to ``major.minor``."""
    return with_tags({"metric_version": f"{major}.{minor}"})


class _Tagged:
    def __init__(self, opts: tuple) -> None:
        self._tags: Dict[str, str] = {}
        for opt in opts:
            opt(self._tags)
        self._lock = threading.Lock()

    @property
    def tags(self) -> Dict[str, str]:
        """A copy of the metric's tags."""
        return dict(self._tags)


class Counter(_Tagged):
    """A counter whose delta is reset each time it is emitted."""

    def __init__(self, name: str, source_id: str, *opts: MetricOption) -> None:
        super().__init__(opts)
        self.name = name
        self.source_id = source_id
        self._delta = 0

    def increment(self, c: int) -> None:
        """Add ``c`` to the delta."""
        if c < 0:
            raise ValueError(f"counter increment must not be negative, got {c}")
        with self._lock:
            self._delta = (self._delta + c) & _UINT64_MASK

    @property
    def delta(self) -> int:
        """The current delta."""
        with self._lock:
            return self._delta

    def with_envelope(self, fn: Callable[[Envelope], R]) -> R:
        """Pass an envelope of the current delta to ``fn`` and reset the delta.

        If ``fn`` raises, the delta is added back and the exception propagates.
        """
        with self._lock:
            taken, self._delta = self._delta, 0
        try:
            return fn(self._to_envelope(taken))
        except BaseException:
            with self._lock:
                self._delta = (self._delta + taken) & _UINT64_MASK
            raise

    def _to_envelope(self, delta: int) -> Envelope:
        return Envelope(
            source_id=self.source_id,
            timestamp=time.time_ns(),
            counter=CounterMessage(name=self.name, delta=delta),
            deprecated_tags=dict(self._tags),
        )


def _to_uint64(value: float) -> int:
    return int(value * 10.0**_PRECISION) & _UINT64_MASK


def _to_float(value: int) -> float:
    return value / 10.0**_PRECISION


class Gauge(_Tagged):
    """A gauge holding a value with two decimal places of precision."""

    def __init__(self, name: str, unit: str, source_id: str, *opts: MetricOption) -> None:
        super().__init__(opts)
        self.name = name
        self.unit = unit
        self.source_id = source_id
        self._value = 0

    def set(self, value: float) -> None:
        """Replace the gauge's value."""
        with self._lock:
            self._value = _to_uint64(value)

    def increment(self, value: float) -> None:
        """Add ``value`` to the gauge."""
        with self._lock:
            self._value = (self._value + _to_uint64(value)) & _UINT64_MASK

    def decrement(self, value: float) -> None:
        """Subtract ``value`` from the gauge."""
        with self._lock:
            self._value = (self._value + _to_uint64(-value)) & _UINT64_MASK

    @property
    def value(self) -> float:
        """The gauge's current value."""
        with self._lock:
            return _to_float(self._value)

    def with_envelope(self, fn: Callable[[Envelope], R]) -> R:
        """Pass an envelope of the current value to ``fn``."""
        return fn(self._to_envelope(self.value))

    def _to_envelope(self, value: float) -> Envelope:
        return Envelope(
            source_id=self.source_id,
            timestamp=time.time_ns(),
            gauge={self.name: GaugeValue(unit=self.unit, value=value)},
            deprecated_tags=dict(self._tags),
        )