"""Pool of doppler connections keyed by address."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Protocol, Sequence

log = logging.getLogger(__name__)


class DopplerStream(Protocol):
    """A subscription stream from one doppler."""

    def recv(self) -> Sequence[bytes]:
        """Return the next batch of payloads; raise when the stream fails or ends."""

    def close(self) -> None:
        """Stop the stream."""


class DopplerClient(Protocol):
    """A connection to one doppler."""

    def batch_subscribe(self, request: Any) -> DopplerStream:
        """Open a batched subscription stream for ``request``."""

    def close(self) -> None:
        """Close the connection."""


Dialer = Callable[[str], DopplerClient]


class NoConnectionError(ConnectionError):
    """Raised when no connection to the requested doppler exists."""


class Pool:
    """Holds one connection per registered doppler address.

    Connections are made in the background by ``dial``; a failed dial is
    retried every ``retry_interval`` seconds until it succeeds.
    """

    def __init__(self, dial: Dialer, *, retry_interval: float = 5.0) -> None:
        self._dial = dial
        self._retry_interval = retry_interval
        self._lock = threading.Lock()
        self._dopplers: Dict[str, DopplerClient] = {}

    def register_doppler(self, addr: str) -> None:
        """Start connecting to ``addr`` in the background."""
        threading.Thread(target=self._connect, args=(addr,), daemon=True).start()

    def subscribe(self, doppler_addr: str, request: Any) -> DopplerStream:
        """Open a subscription stream on the connection to ``doppler_addr``."""
        with self._lock:
            client = self._dopplers.get(doppler_addr)
        if client is None:
            raise NoConnectionError("no connections available for subscription")
        return client.batch_subscribe(request)

    def close(self, doppler_addr: str) -> None:
        """Forget and close the connection to ``doppler_addr``, if any."""
        with self._lock:
            client = self._dopplers.pop(doppler_addr, None)
        if client is not None:
            client.close()

    @property
    def size(self) -> int:
        """Number of connected dopplers."""
        with self._lock:
            return len(self._dopplers)

    def __len__(self) -> int:
        return self.size

    def _connect(self, addr: str) -> None:
        stop = threading.Event()
        while True:
            log.info("adding doppler %s", addr)
            try:
                client = self._dial(addr)
            except Exception as exc:
                log.warning("unable to subscribe to doppler %s: %s", addr, exc)
                stop.wait(self._retry_interval)
                continue
            with self._lock:
                self._dopplers[addr] = client
            return