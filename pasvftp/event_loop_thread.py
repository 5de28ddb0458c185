"""Event loops running in their own threads, and a round-robin pool of them."""

from __future__ import annotations

import threading
from typing import List, Optional

from pasvftp.event_loop import EventLoop, LoopError


class EventLoopThread:
    """A thread that owns and runs one event loop."""

    def __init__(self) -> None:
        self._loop: Optional[EventLoop] = None
        self._error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None
        self._cond = threading.Condition()
        self._exiting = False

    @property
    def loop(self) -> Optional[EventLoop]:
        return self._loop

    def start_loop(self) -> EventLoop:
        """Start the thread and return its loop once it exists."""
        if self._thread is not None:
            raise LoopError("event loop thread already started")
        self._thread = threading.Thread(
            target=self._thread_func, name="EventLoopThread", daemon=True
        )
        self._thread.start()
        with self._cond:
            self._cond.wait_for(lambda: self._loop is not None or self._error is not None)
        if self._error is not None:
            raise LoopError("event loop thread failed to start") from self._error
        assert self._loop is not None
        return self._loop

    def _thread_func(self) -> None:
        try:
            loop = EventLoop()
        except Exception as exc:
            with self._cond:
                self._error = exc
                self._cond.notify_all()
            return
        with self._cond:
            self._loop = loop
            self._cond.notify_all()
        try:
            loop.loop()
        finally:
            loop.close()

    def stop(self) -> None:
        """Stop the loop and wait for the thread to finish."""
        self._exiting = True
        if self._loop is not None:
            # Queued rather than set directly so a loop that has not yet
            # started looping still sees the request.
            self._loop.queue_in_loop(self._loop.quit)
        if self._thread is not None:
            self._thread.join()


class EventLoopThreadPool:
    """A fixed set of loop threads handed out in turn."""

    def __init__(self, base_loop: EventLoop) -> None:
        self._base_loop = base_loop
        self._started = False
        self._num_threads = 0
        self._next = 0
        self._threads: List[EventLoopThread] = []
        self._loops: List[EventLoop] = []

    @property
    def started(self) -> bool:
        return self._started

    @property
    def loops(self) -> List[EventLoop]:
        return list(self._loops)

    def set_thread_num(self, num_threads: int) -> None:
        if num_threads < 0:
            raise ValueError(f"thread count must not be negative: {num_threads}")
        self._num_threads = num_threads

    def start(self) -> None:
        """Start the configured number of loop threads."""
        self._base_loop.assert_in_loop_thread()
        self._started = True
        for _ in range(self._num_threads):
            thread = EventLoopThread()
            self._threads.append(thread)
            self._loops.append(thread.start_loop())

    def get_next_loop(self) -> EventLoop:
        """The next loop in turn, or the base loop when there are no threads."""
        self._base_loop.assert_in_loop_thread()
        if not self._loops:
            return self._base_loop
        loop = self._loops[self._next]
        self._next = (self._next + 1) % len(self._loops)
        return loop

    def stop(self) -> None:
        """Stop every loop thread."""
        for thread in self._threads:
            thread.stop()
        self._threads.clear()
        self._loops.clear()
        self._next = 0