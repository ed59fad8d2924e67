"""An in-memory metric registry keyed by name and constant labels."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List


@dataclass
class MetricOpts:
    """Options a registry metric is created with."""

    help: str = ""
    const_labels: Dict[str, str] = field(default_factory=dict)


RegistryOption = Callable[[MetricOpts], None]


def with_const_labels(labels: Dict[str, str]) -> RegistryOption:
    """Option that adds constant labels to a metric."""
    captured = dict(labels)

    def apply(opts: MetricOpts) -> None:
        opts.const_labels.update(captured)

    return apply


def _metric_key(name: str, tags: Dict[str, str]) -> str:
    # One empty key per tag precedes the real keys; this keeps keys stable
    # with those already recorded by existing users of the registry.
    keys = sorted([""] * len(tags) + list(tags))
    return name + "".join(f"{key}_{tags.get(key, '')}" for key in keys)


class SpyMetric:
    """A metric whose value can be set, added to and read."""

    def __init__(self, name: str, opts: MetricOpts) -> None:
        self.name = name
        self.opts = opts
        self.keys: List[str] = sorted(opts.const_labels)
        self._lock = threading.Lock()
        self._value = 0.0

    def set(self, value: float) -> None:
        """Replace the value."""
        with self._lock:
            self._value = value

    def add(self, value: float) -> None:
        """Add to the value."""
        with self._lock:
            self._value += value

    @property
    def value(self) -> float:
        """The current value."""
        with self._lock:
            return self._value


class SpyRegistry:
    """Records created counters and gauges for later lookup."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.metrics: Dict[str, SpyMetric] = {}

    def _new_metric(self, name: str, help_text: str, opts: tuple) -> SpyMetric:
        metric_opts = MetricOpts(help=help_text)
        for opt in opts:
            opt(metric_opts)
        metric = SpyMetric(name, metric_opts)
        with self._lock:
            self.metrics[_metric_key(name, metric_opts.const_labels)] = metric
        return metric

    def new_counter(self, name: str, help_text: str, *args: RegistryOption) -> SpyMetric:
        """Create and record a counter."""
        return self._new_metric(name, help_text, args)

    def new_gauge(self, name: str, help_text: str, *args: RegistryOption) -> SpyMetric:
        """Create and record a gauge."""
        return self._new_metric(name, help_text, args)

    def get_metric(self, name: str, tags: Dict[str, str]) -> SpyMetric:
        """Return the metric with ``name`` and ``tags``; raise KeyError if unknown."""
        with self._lock:
            try:
                return self.metrics[_metric_key(name, tags)]
            except KeyError:
                raise KeyError(f"unknown metric: {name}") from None

    def has_metric(self, name: str, tags: Dict[str, str]) -> bool:
        """Whether a metric with ``name`` and ``tags`` was created."""
        with self._lock:
            return _metric_key(name, tags) in self.metrics