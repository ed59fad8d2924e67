"""Fan-in of subscriptions across every doppler a finder announces."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, List, Optional, Protocol, Set

from logplumb.metrics import Counter, MetricOption, with_tags, with_version
from logplumb.pool import DopplerStream, Pool
from logplumb.static_finder import Event

log = logging.getLogger(__name__)

MAX_CONNECTIONS = 2000
_INITIAL_DELAY = 0.001
_MAX_DELAY = 60.0
_FINDER_POLL = 0.1


@dataclass(frozen=True)
class SubscriptionRequest:
    """What a consumer subscribes to: a shard and optionally one app."""

    shard_id: str = ""
    app_id: Optional[str] = None


class SubscriptionCancelled(Exception):
    """Raised when reading from a cancelled subscription."""


class ConnectionLimitError(Exception):
    """Raised when the connector already serves its maximum of subscriptions."""


class Finder(Protocol):
    """Yields events that tell which dopplers are available."""

    def next(self, timeout: Optional[float] = None) -> Event:
        """Return the next event; raise TimeoutError if none arrives in time."""


class MetricClient(Protocol):
    """Creates counters that are emitted periodically."""

    def new_counter(self, name: str, *args: MetricOption) -> Counter:
        """Create a counter."""


def _close_quietly(stream: DopplerStream) -> None:
    try:
        stream.close()
    except Exception:
        pass


class Subscription:
    """One consumer's merged stream of payloads from all dopplers."""

    def __init__(self, request: SubscriptionRequest, buffer_size: int) -> None:
        self.request = request
        self._capacity = max(1, buffer_size)
        self._buffer: Deque[bytes] = deque()
        self._cond = threading.Condition()
        self._cancelled = False
        self._dopplers: Set[str] = set()
        self._streams: Set[Any] = set()

    @property
    def cancelled(self) -> bool:
        """Whether the subscription has been cancelled."""
        with self._cond:
            return self._cancelled

    def recv(self, timeout: Optional[float] = None) -> bytes:
        """Return the next payload.

        Raises SubscriptionCancelled once cancelled, and TimeoutError if no
        payload arrives within ``timeout`` seconds.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._cancelled:
                    raise SubscriptionCancelled("subscription cancelled")
                if self._buffer:
                    payload = self._buffer.popleft()
                    self._cond.notify_all()
                    return payload
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("no data received")
                self._cond.wait(remaining)

    def cancel(self) -> None:
        """Stop the subscription and every stream feeding it."""
        with self._cond:
            self._cancelled = True
            streams = list(self._streams)
            self._streams.clear()
            self._cond.notify_all()
        for stream in streams:
            _close_quietly(stream)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: object) -> None:
        self.cancel()

    def _put(self, payload: bytes) -> bool:
        with self._cond:
            while len(self._buffer) >= self._capacity and not self._cancelled:
                self._cond.wait()
            if self._cancelled:
                return False
            self._buffer.append(payload)
            self._cond.notify_all()
            return True

    def _wait_cancelled(self, delay: float) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._cancelled, timeout=delay)

    def _try_add_doppler(self, uri: str) -> bool:
        with self._cond:
            if uri in self._dopplers:
                return False
            self._dopplers.add(uri)
            return True

    def _forget_doppler(self, uri: str) -> None:
        with self._cond:
            self._dopplers.discard(uri)

    def _track_stream(self, stream: Any) -> bool:
        with self._cond:
            if self._cancelled:
                return False
            self._streams.add(stream)
            return True

    def _untrack_stream(self, stream: Any) -> None:
        with self._cond:
            self._streams.discard(stream)


@dataclass(eq=False)
class _DopplerClientInfo:
    uri: str
    disconnect: bool = False
    ref_count: int = 0


class GRPCConnector:
    """Connects every subscription to every doppler the finder announces.

    Dopplers that disappear from the finder's events are disconnected once
    no subscription reads from them any more; dopplers that reappear before
    that keep their existing streams.
    """

    def __init__(
        self,
        buffer_size: int,
        pool: Pool,
        finder: Finder,
        metric_client: MetricClient,
        *,
        max_connections: int = MAX_CONNECTIONS,
    ) -> None:
        self._ingress = metric_client.new_counter(
            "ingress", with_tags({"protocol": "grpc"}), with_version(2, 0)
        )
        self._buffer_size = buffer_size
        self._pool = pool
        self._finder = finder
        self._lock = threading.Lock()
        self._clients: List[_DopplerClientInfo] = []
        self._states_lock = threading.Lock()
        self._subscriptions: List[Optional[Subscription]] = [None] * max_connections
        self._closed = threading.Event()
        self._finder_thread = threading.Thread(target=self._read_finder, daemon=True)
        self._finder_thread.start()

    def subscribe(self, request: SubscriptionRequest) -> Subscription:
        """Start a subscription that merges data from every doppler."""
        subscription = Subscription(request, self._buffer_size)
        self._add_subscription(subscription)
        with self._lock:
            log.info("Connecting to %d dopplers", len(self._clients))
            for client in self._clients:
                self._spawn(subscription, client)
        return subscription

    def close(self) -> None:
        """Stop following the finder and cancel every subscription."""
        self._closed.set()
        self._finder_thread.join(timeout=2 * _FINDER_POLL + 1.0)
        with self._states_lock:
            live = [s for s in self._subscriptions if s is not None]
        for subscription in live:
            subscription.cancel()

    def __enter__(self) -> "GRPCConnector":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _add_subscription(self, subscription: Subscription) -> None:
        with self._states_lock:
            for i, state in enumerate(self._subscriptions):
                if state is None or state.cancelled:
                    self._subscriptions[i] = subscription
                    return
        raise ConnectionLimitError(f"at connection limit: {len(self._subscriptions)}")

    def _live_subscriptions(self) -> List[Subscription]:
        with self._states_lock:
            return [s for s in self._subscriptions if s is not None and not s.cancelled]

    def _read_finder(self) -> None:
        while not self._closed.is_set():
            try:
                event = self._finder.next(timeout=_FINDER_POLL)
            except TimeoutError:
                continue
            log.info("Event from finder: %s", event)
            self._handle_finder_event(event.grpc_dopplers)

    def _handle_finder_event(self, uris: List[str]) -> None:
        with self._lock:
            new_uris, dead_clients = self._delta(uris)

            for addr in new_uris:
                self._pool.register_doppler(addr)
                client = _DopplerClientInfo(uri=addr)
                self._clients.append(client)
                for subscription in self._live_subscriptions():
                    self._spawn(subscription, client)

            for dead in dead_clients:
                log.info("Disabling reconnects for doppler %s", dead.uri)
                dead.disconnect = True
                if dead.ref_count == 0:
                    log.info("closing doppler connection %s...", dead.uri)
                    self._pool.close(dead.uri)
                    self._remove_client(dead)

    def _delta(self, uris: List[str]):
        dead = list(self._clients)
        added = []
        for uri in uris:
            match = next((client for client in dead if client.uri == uri), None)
            if match is None:
                added.append(uri)
                continue
            match.disconnect = False
            dead.remove(match)
        return added, dead

    def _remove_client(self, client: _DopplerClientInfo) -> None:
        self._clients = [c for c in self._clients if c is not client]

    def _spawn(self, subscription: Subscription, client: _DopplerClientInfo) -> None:
        threading.Thread(
            target=self._consume, args=(subscription, client), daemon=True
        ).start()

    def _consume(self, subscription: Subscription, client: _DopplerClientInfo) -> None:
        if not subscription._try_add_doppler(client.uri):
            return
        with self._lock:
            client.ref_count += 1
        try:
            self._consume_loop(subscription, client)
        finally:
            with self._lock:
                client.ref_count -= 1
                if client.ref_count <= 0 and client.disconnect:
                    log.info("closing doppler connection %s...", client.uri)
                    self._pool.close(client.uri)
                    self._remove_client(client)
            subscription._forget_doppler(client.uri)

    def _consume_loop(self, subscription: Subscription, client: _DopplerClientInfo) -> None:
        delay = _INITIAL_DELAY
        tried = False
        while True:
            cancelled = subscription.cancelled
            with self._lock:
                doppler_disconnect = client.disconnect
            if (tried and doppler_disconnect) or cancelled:
                log.info(
                    "Disconnecting from stream (%s) (doppler.disconnect=%s) (cancelled=%s)",
                    client.uri,
                    doppler_disconnect,
                    cancelled,
                )
                return
            tried = True

            try:
                stream = self._pool.subscribe(client.uri, subscription.request)
            except Exception as exc:
                log.warning("Unable to connect to doppler (%s): %s", client.uri, exc)
                subscription._wait_cancelled(delay)
                if delay < _MAX_DELAY:
                    delay *= 10
                continue

            delay = _INITIAL_DELAY
            try:
                self._read_stream(stream, subscription)
            except Exception as exc:
                if not subscription.cancelled:
                    log.warning("error getting logs from provider: %s", exc)

    def _read_stream(self, stream: DopplerStream, subscription: Subscription) -> None:
        if not subscription._track_stream(stream):
            _close_quietly(stream)
            return
        try:
            while True:
                payloads = stream.recv()
                for payload in payloads:
                    if not subscription._put(payload):
                        return
                self._ingress.increment(len(payloads))
        finally:
            subscription._untrack_stream(stream)
            _close_quietly(stream)