"""An in-memory metric client that records metrics instead of sending them."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import List

from logplumb.metrics import Counter, Envelope, Gauge, MetricOption


@dataclass
class _NamedCounter:
    name: str
    metric: Counter


@dataclass
class _NamedGauge:
    name: str
    metric: Gauge


@dataclass
class _RecordedEvent:
    title: str
    body: str


class SpyMetricClient:
    """Creates metrics with an empty source id and keeps them for inspection."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._counters: List[_NamedCounter] = []
        self._gauges: List[_NamedGauge] = []
        self._events: List[_RecordedEvent] = []

    def new_counter(self, name: str, *args: MetricOption) -> Counter:
        """Create and record a counter."""
        metric = Counter(name, "", *args)
        with self._lock:
            self._counters.append(_NamedCounter(name, metric))
        return metric

    def new_gauge(self, name: str, unit: str, *args: MetricOption) -> Gauge:
        """Create and record a gauge."""
        metric = Gauge(name, unit, "", *args)
        with self._lock:
            self._gauges.append(_NamedGauge(name, metric))
        return metric

    def emit_event(self, title: str, body: str) -> None:
        """Record an event."""
        with self._lock:
            self._events.append(_RecordedEvent(title, body))

    def get_event(self, title: str) -> str:
        """Body of the first event with ``title``, or an empty string."""
        with self._lock:
            return next((e.body for e in self._events if e.title == title), "")

    def get_delta(self, name: str) -> int:
        """Delta of the first counter named ``name``, or 0."""
        with self._lock:
            return next((c.metric.delta for c in self._counters if c.name == name), 0)

    def get_envelopes(self, name: str) -> List[Envelope]:
        """Envelopes of every counter and gauge named ``name``.

        Counters are emitted, so their deltas are reset.
        """
        with self._lock:
            envelopes = [
                c.metric.with_envelope(lambda env: env) for c in self._counters if c.name == name
            ]
            envelopes.extend(
                g.metric.with_envelope(lambda env: env) for g in self._gauges if g.name == name
            )
        return envelopes

    def get_value(self, name: str) -> float:
        """Value of the first gauge named ``name``, or 0."""
        with self._lock:
            return next((g.metric.value for g in self._gauges if g.name == name), 0.0)