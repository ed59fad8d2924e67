"""Client that periodically emits metrics and events to an ingress service."""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from logplumb.metrics import (
    Counter,
    Envelope,
    EventMessage,
    Gauge,
    MetricOption,
    with_tags,
)

_EVENT_TIMEOUT = 1.0


class IngressSender(Protocol):
    """A stream that envelopes can be sent on."""

    def send(self, envelope: Envelope) -> None:
        """Send one envelope; raise on failure."""

    def close_and_recv(self) -> Any:
        """Close the stream."""


class Ingress(Protocol):
    """Opens sender streams to the ingress service."""

    def sender(self, timeout: Optional[float] = None) -> IngressSender:
        """Open a new sender stream; raise if the service is unavailable."""


def _close_quietly(sender: IngressSender) -> None:
    try:
        sender.close_and_recv()
    except Exception:
        pass


class Client:
    """Creates metrics and sends each of them to the ingress every pulse interval.

    Tags given to the client (origin, deployment, job, index) are added to
    every metric it creates, overriding metric tags of the same name.
    """

    def __init__(
        self,
        ingress: Ingress,
        *,
        pulse_interval: float = 5.0,
        source_id: str = "",
        origin: Optional[str] = None,
        deployment: Optional[Tuple[str, str, str]] = None,
    ) -> None:
        if pulse_interval <= 0:
            raise ValueError(f"pulse interval must be positive, got {pulse_interval}")
        self._ingress = ingress
        self._pulse_interval = pulse_interval
        self.source_id = source_id
        self._tags: Dict[str, str] = {}
        if origin is not None:
            self._tags["origin"] = origin
        if deployment is not None:
            name, job, index = deployment
            self._tags.update({"deployment": name, "job": job, "index": index})
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()

    @property
    def tags(self) -> Dict[str, str]:
        """A copy of the tags added to every metric."""
        return dict(self._tags)

    def new_counter(self, name: str, *args: MetricOption) -> Counter:
        """Create a counter that is emitted, and reset, every pulse interval."""
        metric = Counter(name, self.source_id, *args, with_tags(self._tags))
        self._start_pulse(metric)
        return metric

    def new_gauge(self, name: str, unit: str, *args: MetricOption) -> Gauge:
        """Create a gauge whose value is emitted every pulse interval."""
        metric = Gauge(name, unit, self.source_id, *args, with_tags(self._tags))
        self._start_pulse(metric)
        return metric

    def emit_event(self, title: str, body: str) -> None:
        """Send one event envelope. Failures are ignored."""
        try:
            sender = self._ingress.sender(timeout=_EVENT_TIMEOUT)
        except Exception:
            return
        try:
            sender.send(
                Envelope(
                    source_id=self.source_id,
                    timestamp=time.time_ns(),
                    event=EventMessage(title=title, body=body),
                )
            )
        except Exception:
            pass
        finally:
            _close_quietly(sender)

    def close(self) -> None:
        """Stop emitting metrics."""
        self._stop.set()
        with self._lock:
            threads, self._threads = self._threads, []
        for thread in threads:
            thread.join(timeout=max(1.0, self._pulse_interval * 2))

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _start_pulse(self, metric: Union[Counter, Gauge]) -> None:
        thread = threading.Thread(target=self._pulse, args=(metric,), daemon=True)
        with self._lock:
            self._threads.append(thread)
        thread.start()

    def _pulse(self, metric: Union[Counter, Gauge]) -> None:
        sender: Optional[IngressSender] = None
        while not self._stop.wait(self._pulse_interval):
            if sender is None:
                try:
                    sender = self._ingress.sender()
                except Exception:
                    continue
            try:
                metric.with_envelope(sender.send)
            except Exception:
                _close_quietly(sender)
                sender = None
        if sender is not None:
            _close_quietly(sender)