"""A finder that announces a fixed set of doppler addresses."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional


@dataclass
class Event:
    """The set of doppler addresses currently available."""

    grpc_dopplers: list[str] = field(default_factory=list)


class StaticFinder:
    """Yields one event with the given addresses, then blocks until stopped."""

    def __init__(self, addrs: Iterable[str]) -> None:
        self._events: "queue.Queue[Event]" = queue.Queue(maxsize=10)
        self._events.put(Event(list(addrs)))
        self._running = threading.Event()

    @property
    def running(self) -> bool:
        """Whether the finder has been started and not yet stopped."""
        return self._running.is_set()

    def start(self) -> None:
        """Mark the finder as running; the first event is queued at construction."""
        self._running.set()

    def stop(self) -> None:
        """Announce that no dopplers remain."""
        self._running.clear()
        self._events.put(Event([]))

    def next(self, timeout: Optional[float] = None) -> Event:
        """Return the next event, waiting up to ``timeout`` seconds.

        Raises TimeoutError if no event arrives in time.
        """
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("no finder event available") from None