import threading

import pytest

from logplumb.static_finder import Event, StaticFinder


def test_returns_event_of_all_dopplers():
    finder = StaticFinder(["1.1.1.1", "2.2.2.2"])
    event = finder.next()
    assert event.grpc_dopplers == ["1.1.1.1", "2.2.2.2"]


def test_blocks_after_first_call():
    finder = StaticFinder(["1.1.1.1", "2.2.2.2"])
    finder.next()
    with pytest.raises(TimeoutError):
        finder.next(timeout=0.1)


def test_returns_no_dopplers_after_stopping():
    finder = StaticFinder(["1.1.1.1", "2.2.2.2"])
    finder.next()
    finder.start()
    finder.stop()
    event = finder.next()
    assert event.grpc_dopplers == []


def test_stop_wakes_blocked_reader():
    finder = StaticFinder(["1.1.1.1"])
    finder.next()
    results = []
    t = threading.Thread(target=lambda: results.append(finder.next(timeout=2)))
    t.start()
    finder.stop()
    t.join(timeout=3)
    assert results == [Event([])]


def test_input_is_copied():
    addrs = ["1.1.1.1"]
    finder = StaticFinder(addrs)
    addrs.append("2.2.2.2")
    assert finder.next().grpc_dopplers == ["1.1.1.1"]