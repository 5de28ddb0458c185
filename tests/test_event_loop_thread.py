import threading

import pytest

from pasvftp.event_loop import EventLoop, LoopError
from pasvftp.event_loop_thread import EventLoopThread, EventLoopThreadPool


@pytest.fixture
def base_loop():
    lp = EventLoop()
    yield lp
    lp.close()


def test_start_loop_runs_in_its_own_thread():
    thread = EventLoopThread()
    loop = thread.start_loop()
    try:
        assert not loop.is_in_loop_thread()
        assert thread.loop is loop
        done = threading.Event()
        idents = []
        loop.run_in_loop(lambda: (idents.append(threading.get_ident()), done.set()))
        assert done.wait(5)
        assert idents[0] != threading.get_ident()
        assert len(idents) == 1
    finally:
        thread.stop()
    assert loop.closed


def test_loop_thread_runs_timers():
    thread = EventLoopThread()
    loop = thread.start_loop()
    fired = threading.Event()
    try:
        loop.run_after(0.02, fired.set)
        assert fired.wait(5)
    finally:
        thread.stop()
    assert loop.closed


def test_start_loop_twice_raises():
    thread = EventLoopThread()
    thread.start_loop()
    try:
        with pytest.raises(LoopError):
            thread.start_loop()
    finally:
        thread.stop()


def test_stop_before_start_is_harmless():
    thread = EventLoopThread()
    thread.stop()
    assert thread.loop is None


def test_pool_without_threads_returns_base_loop(base_loop):
    pool = EventLoopThreadPool(base_loop)
    pool.start()
    assert pool.started
    assert pool.get_next_loop() is base_loop
    assert pool.get_next_loop() is base_loop


def test_pool_round_robin(base_loop):
    pool = EventLoopThreadPool(base_loop)
    pool.set_thread_num(3)
    pool.start()
    try:
        picked = [pool.get_next_loop() for _ in range(6)]
        assert picked[:3] == picked[3:]
        assert len({id(lp) for lp in picked}) == 3
        assert all(lp is not base_loop for lp in picked)
        assert pool.loops == picked[:3]
    finally:
        pool.stop()
    assert all(lp.closed for lp in picked)
    assert pool.loops == []


def test_pool_start_from_other_thread_raises(base_loop):
    pool = EventLoopThreadPool(base_loop)
    errors = []

    def worker():
        try:
            pool.start()
        except LoopError as exc:
            errors.append(exc)

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()
    assert len(errors) == 1
    assert not pool.started


def test_negative_thread_count_rejected(base_loop):
    pool = EventLoopThreadPool(base_loop)
    with pytest.raises(ValueError):
        pool.set_thread_num(-1)