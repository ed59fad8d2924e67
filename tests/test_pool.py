import queue
import threading
import time

import pytest

from logplumb.pool import NoConnectionError, Pool


def eventually(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeStream:
    def __init__(self):
        self._queue = queue.Queue()
        self._closed = threading.Event()

    def send(self, payloads):
        self._queue.put(list(payloads))

    def recv(self):
        while True:
            if self._closed.is_set():
                raise ConnectionError("stream closed")
            try:
                return self._queue.get(timeout=0.01)
            except queue.Empty:
                continue

    def close(self):
        self._closed.set()


class FakeClient:
    def __init__(self, addr):
        self.addr = addr
        self.closed = False
        self.requests = []
        self.streams = queue.Queue()

    def batch_subscribe(self, request):
        self.requests.append(request)
        stream = FakeStream()
        self.streams.put(stream)
        return stream

    def close(self):
        self.closed = True


class FakeDialer:
    def __init__(self, failures=0):
        self.failures = failures
        self.attempts = 0
        self.clients = {}
        self._lock = threading.Lock()

    def __call__(self, addr):
        with self._lock:
            self.attempts += 1
            if self.attempts <= self.failures:
                raise ConnectionError("dial failed")
            client = FakeClient(addr)
            self.clients[addr] = client
            return client


class FailingDialer:
    def __call__(self, addr):
        raise ConnectionError("unreachable")


def test_register_adds_entries_to_the_pool():
    pool = Pool(FakeDialer())
    pool.register_doppler("192.0.2.10:8080")
    pool.register_doppler("192.0.2.11:8080")
    assert eventually(lambda: pool.size == 2)
    assert len(pool) == 2


def test_close_removes_entries_and_closes_connection():
    dialer = FakeDialer()
    pool = Pool(dialer)
    pool.register_doppler("192.0.2.10:8080")
    pool.register_doppler("192.0.2.11:8080")
    assert eventually(lambda: pool.size == 2)

    pool.close("192.0.2.11:8080")

    assert pool.size == 1
    assert dialer.clients["192.0.2.11:8080"].closed is True
    assert dialer.clients["192.0.2.10:8080"].closed is False


def test_close_of_unknown_address_leaves_pool_unchanged():
    pool = Pool(FakeDialer())
    pool.register_doppler("192.0.2.10:8080")
    assert eventually(lambda: pool.size == 1)
    pool.close("192.0.2.99:8080")
    assert pool.size == 1


def test_subscribe_unregistered_doppler_raises():
    pool = Pool(FakeDialer())
    with pytest.raises(NoConnectionError, match="no connections available"):
        pool.subscribe("invalid", {"shard_id": "some-shard-id"})


def test_subscribe_registered_but_not_up_raises():
    pool = Pool(FailingDialer(), retry_interval=0.01)
    pool.register_doppler("some-addr")
    time.sleep(0.05)
    with pytest.raises(NoConnectionError):
        pool.subscribe("some-addr", {"shard_id": "some-shard-id"})
    assert pool.size == 0


def test_failed_dial_is_retried():
    dialer = FakeDialer(failures=2)
    pool = Pool(dialer, retry_interval=0.01)
    pool.register_doppler("192.0.2.10:8080")
    assert eventually(lambda: pool.size == 1)
    assert dialer.attempts == 3


def test_subscribe_streams_data_from_the_doppler():
    dialer = FakeDialer()
    pool = Pool(dialer)
    addr = "192.0.2.10:8080"
    pool.register_doppler(addr)
    assert eventually(lambda: pool.size == 1)

    request = {"shard_id": "some-shard-id"}
    streams = [pool.subscribe(addr, request) for _ in range(10)]
    client = dialer.clients[addr]
    assert client.requests == [request] * 10

    received = []
    for stream in streams:
        stream.send([b"some-data"])
        received.extend(stream.recv())
    assert received == [b"some-data"] * 10