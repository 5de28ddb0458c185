"""Single-threaded reactor: polls channels, runs timers and queued work."""

from __future__ import annotations

import math
import socket
import threading
from typing import Callable, List, Optional

from pasvftp.channel import Channel
from pasvftp.poller import Poller
from pasvftp.timer import TimerCallback, TimerId
from pasvftp.timer_queue import TimerQueue, how_much_time_from_now
from pasvftp.timestamp import Timestamp

Functor = Callable[[], None]

_thread_state = threading.local()


class LoopError(RuntimeError):
    """An event loop was used from the wrong thread or in the wrong state."""


class EventLoop:
    """Runs I/O callbacks, timers and queued functions in one thread.

    At most one loop exists per thread; it may only be driven from the
    thread that created it. Other threads hand work over with
    ``run_in_loop`` or ``queue_in_loop``.
    """

    def __init__(self) -> None:
        if getattr(_thread_state, "loop", None) is not None:
            raise LoopError("Eventloop: loop has been created")
        self._thread_id = threading.get_ident()
        self._looping = False
        self._quit = False
        self._closed = False
        self._calling_pending = False
        self._lock = threading.Lock()
        self._pending: List[Functor] = []
        self._poller = Poller(self)
        self._wakeup_read, self._wakeup_write = socket.socketpair()
        self._wakeup_read.setblocking(False)
        self._wakeup_write.setblocking(False)
        self._timer_queue = TimerQueue(self)
        _thread_state.loop = self
        self._wakeup_channel = Channel(self, self._wakeup_read)
        self._wakeup_channel.read_callback = lambda _time: self._handle_read()
        self._wakeup_channel.enable_reading()

    @classmethod
    def current(cls) -> Optional[EventLoop]:
        """The loop owned by the calling thread, or None."""
        return getattr(_thread_state, "loop", None)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def looping(self) -> bool:
        return self._looping

    def loop(self, timeout_ms: int = -1) -> None:
        """Dispatch events until ``quit`` is called.

        ``timeout_ms`` bounds each wait for I/O; negative waits until an
        event or the next timer.
        """
        if self._looping:
            raise LoopError("Eventloop: looping")
        if self._closed:
            raise LoopError("Eventloop: loop is closed")
        self.assert_in_loop_thread()
        self._looping = True
        self._quit = False
        try:
            while not self._quit:
                now, active = self._poller.poll(self._poll_timeout(timeout_ms))
                for channel in active:
                    channel.handle_event(now)
                self._timer_queue.process_expired(Timestamp.now())
                self._do_pending_functors()
        finally:
            self._looping = False

    def _poll_timeout(self, timeout_ms: int) -> int:
        expiration = self._timer_queue.next_expiration()
        if expiration is None:
            return timeout_ms
        delay_ms = math.ceil(how_much_time_from_now(expiration) * 1000)
        return delay_ms if timeout_ms < 0 else min(timeout_ms, delay_ms)

    def quit(self) -> None:
        """Ask the loop to stop after the current iteration."""
        self._quit = True
        if not self.is_in_loop_thread():
            self._wakeup()

    def is_in_loop_thread(self) -> bool:
        return self._thread_id == threading.get_ident()

    def assert_in_loop_thread(self) -> None:
        if not self.is_in_loop_thread():
            raise LoopError("Eventloop: Not in loop thread")

    def update_channel(self, channel: Channel) -> None:
        self._poller.update_channel(channel)

    def remove_channel(self, channel: Channel) -> None:
        self._poller.remove_channel(channel)

    def run_at(self, when: Timestamp, callback: TimerCallback) -> TimerId:
        """Run ``callback`` once at ``when``."""
        return self._timer_queue.add_timer(callback, when, 0)

    def run_after(self, delay: float, callback: TimerCallback) -> TimerId:
        """Run ``callback`` once, ``delay`` seconds from now."""
        return self.run_at(Timestamp.now().add_time(delay), callback)

    def run_every(self, interval: float, callback: TimerCallback) -> TimerId:
        """Run ``callback`` every ``interval`` seconds, starting one interval from now."""
        when = Timestamp.now().add_time(interval)
        return self._timer_queue.add_timer(callback, when, interval)

    def cancel(self, timer_id: TimerId) -> None:
        self._timer_queue.cancel(timer_id)

    def run_in_loop(self, callback: Functor) -> None:
        """Run now if in the loop thread, otherwise queue for the loop."""
        if self.is_in_loop_thread():
            callback()
        else:
            self.queue_in_loop(callback)

    def queue_in_loop(self, callback: Functor) -> None:
        """Queue ``callback`` to run in the loop thread after the current poll."""
        with self._lock:
            self._pending.append(callback)
        if not self.is_in_loop_thread() or self._calling_pending:
            self._wakeup()

    def _do_pending_functors(self) -> None:
        self._calling_pending = True
        with self._lock:
            functors, self._pending = self._pending, []
        try:
            for functor in functors:
                functor()
        finally:
            self._calling_pending = False

    def _wakeup(self) -> None:
        try:
            self._wakeup_write.send(b"\x01")
        except OSError:
            # A full pipe already guarantees a wakeup; a closed one has no loop.
            pass

    def _handle_read(self) -> None:
        try:
            while self._wakeup_read.recv(4096):
                pass
        except BlockingIOError:
            pass

    def close(self) -> None:
        """Release the loop's resources; it cannot be used afterwards."""
        if self._closed:
            return
        if self._looping:
            raise LoopError("Eventloop: ~ while looping")
        self.assert_in_loop_thread()
        self._closed = True
        self._wakeup_channel.disable_all()
        self._poller.remove_channel(self._wakeup_channel)
        self._wakeup_read.close()
        self._wakeup_write.close()
        self._poller.close()
        if getattr(_thread_state, "loop", None) is self:
            _thread_state.loop = None

    def __enter__(self) -> EventLoop:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()