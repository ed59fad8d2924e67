import queue
import time

import pytest

from logplumb.envelope_averager import EnvelopeAverager


@pytest.fixture
def averager():
    a = EnvelopeAverager()
    yield a
    a.stop()


@pytest.fixture
def received():
    return queue.Queue()


def eventually_receive(q, predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            value = q.get(timeout=0.05)
        except queue.Empty:
            continue
        if predicate(value):
            return value
    raise AssertionError("no matching value received")


def test_emits_zero_when_no_data(averager, received):
    averager.start(0.001, received.put)
    assert eventually_receive(received, lambda v: v == 0.0) == 0.0


def test_emits_average(averager, received):
    averager.start(0.001, received.put)
    averager.track(1, 100)
    assert eventually_receive(received, lambda v: v == 100.0) == 100.0


def test_resets_each_tick(averager, received):
    averager.start(0.001, received.put)
    averager.track(1, 100)
    assert eventually_receive(received, lambda v: v == 100.0) == 100.0
    assert eventually_receive(received, lambda v: v == 0.0) == 0.0


def test_handles_overflow(averager, received):
    averager.track(0xFFFF, 0xFFFFF)
    averager.start(0.001, received.put)
    value = eventually_receive(received, lambda v: abs(v - 16.0) <= 0.1)
    assert value == pytest.approx(16.0, abs=0.1)

    averager.track(1, 1)
    assert eventually_receive(received, lambda v: v == 1.0) == 1.0


def test_start_twice_raises(averager, received):
    averager.start(0.01, received.put)
    with pytest.raises(RuntimeError):
        averager.start(0.01, received.put)


def test_stop_halts_callbacks(received):
    a = EnvelopeAverager()
    a.start(0.001, received.put)
    eventually_receive(received, lambda v: True)
    a.stop()
    while not received.empty():
        received.get_nowait()
    time.sleep(0.05)
    assert received.empty()