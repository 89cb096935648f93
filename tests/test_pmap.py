import threading
import time

import pytest

from banks2ledger.pmap import p_map


def test_inline_when_concurrency_is_one():
    threads = set()

    def mapper(x):
        threads.add(threading.current_thread().name)
        return x * 2

    assert p_map(range(5), mapper, concurrency=1) == [0, 2, 4, 6, 8]
    assert threads == {threading.current_thread().name}


def test_preserves_input_order():
    def mapper(x):
        # Later items finish first.
        time.sleep(0.01 * (5 - x))
        return x

    assert p_map(range(6), mapper, concurrency=3) == list(range(6))


def test_bounded_concurrency():
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def mapper(x):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.01)
        with lock:
            state["active"] -= 1
        return x

    assert p_map(range(20), mapper, concurrency=4) == list(range(20))
    assert 1 <= state["peak"] <= 4


def test_empty_input():
    assert p_map([], lambda x: x, concurrency=4) == []


def test_error_propagates():
    def mapper(x):
        if x == 3:
            raise RuntimeError("boom")
        return x

    with pytest.raises(RuntimeError, match="boom"):
        p_map(range(10), mapper, concurrency=2)


@pytest.mark.parametrize("bad", [0, -1, True, 1.5, "2"])
def test_invalid_concurrency(bad):
    with pytest.raises(ValueError):
        p_map([1], lambda x: x, concurrency=bad)
