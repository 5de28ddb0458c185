import socket
import threading

import pytest

from pasvftp.event_loop import EventLoop
from pasvftp.inet_address import InetAddress
from pasvftp.tcp_connection import ConnectionState, TcpConnection

LOCAL = InetAddress("127.0.0.1", 6060)
PEER = InetAddress("127.0.0.1", 40000)


@pytest.fixture
def loop():
    lp = EventLoop()
    yield lp
    lp.close()


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    a.setblocking(False)
    b.settimeout(5)
    yield a, b
    a.close()
    b.close()


def _conn(loop, sock):
    return TcpConnection(loop, "127.0.0.1:6060#1", sock, LOCAL, PEER)


def _guard(loop):
    loop.run_after(5, loop.quit)


def test_initial_state_and_establish(loop, pair):
    a, _ = pair
    conn = _conn(loop, a)
    seen = []
    conn.connection_callback = lambda c: seen.append((c, c.connected()))
    assert conn.state is ConnectionState.CONNECTING
    assert not conn.connected()
    assert conn.fileno() == a.fileno()
    assert conn.peer_address == PEER
    assert conn.local_address == LOCAL
    conn.connect_established()
    assert conn.connected()
    assert seen == [(conn, True)]


def test_establish_twice_raises(loop, pair):
    conn = _conn(loop, pair[0])
    conn.connect_established()
    with pytest.raises(RuntimeError):
        conn.connect_established()


def test_message_received(loop, pair):
    a, b = pair
    conn = _conn(loop, a)
    received = []

    def on_message(c, buf, receive_time):
        received.append((c, buf.retrieve_as_bytes(), receive_time.valid()))
        loop.quit()

    conn.message_callback = on_message
    conn.connect_established()
    b.sendall(b"hello")
    _guard(loop)
    loop.loop()
    assert received == [(conn, b"hello", True)]


def test_send_in_loop_thread_reaches_peer(loop, pair):
    a, b = pair
    conn = _conn(loop, a)
    conn.connect_established()
    conn.send(b"abc")
    assert conn.connected()
    assert b.recv(16) == b"abc"


def test_send_text_is_utf8(loop, pair):
    a, b = pair
    conn = _conn(loop, a)
    conn.connect_established()
    conn.send("héllo")
    assert conn.state is ConnectionState.CONNECTED
    assert b.recv(16) == "héllo".encode("utf-8")


def test_send_before_established_is_ignored(loop, pair):
    a, b = pair
    conn = _conn(loop, a)
    conn.send(b"dropped")
    assert conn.state is ConnectionState.CONNECTING
    assert not conn.connected()
    b.setblocking(False)
    with pytest.raises(BlockingIOError):
        b.recv(16)


def _reader(sock, expected_len, out):
    chunks = []
    total = 0
    while total < expected_len:
        chunk = sock.recv(65536)
        if not chunk:
            break
        chunks.append(chunk)
        total += len(chunk)
    out.append(b"".join(chunks))


def test_large_send_completes_with_write_complete(loop, pair):
    a, b = pair
    data = bytes(range(256)) * 16384
    conn = _conn(loop, a)
    completed = []

    def on_complete(c):
        completed.append(c)
        loop.quit()

    conn.write_complete_callback = on_complete
    conn.connect_established()
    out = []
    reader = threading.Thread(target=_reader, args=(b, len(data), out))
    reader.start()
    conn.send(data)
    _guard(loop)
    loop.loop()
    reader.join(5)
    assert completed == [conn]
    assert out == [data]


def test_shutdown_closes_write_side(loop, pair):
    a, b = pair
    conn = _conn(loop, a)
    conn.connect_established()
    conn.shutdown()
    assert conn.state is ConnectionState.DISCONNECTING
    assert b.recv(1) == b""


def test_shutdown_waits_for_pending_output(loop, pair):
    a, b = pair
    data = b"z" * (4 * 1024 * 1024)
    conn = _conn(loop, a)
    conn.write_complete_callback = lambda c: loop.quit()
    conn.connect_established()
    out = []
    reader = threading.Thread(target=_reader, args=(b, len(data) + 1, out))
    reader.start()
    conn.send(data)
    conn.shutdown()
    _guard(loop)
    loop.loop()
    reader.join(5)
    assert out == [data]


def test_peer_close_runs_close_callback_and_destroy(loop, pair):
    a, b = pair
    conn = _conn(loop, a)
    states = []
    closed = []
    conn.connection_callback = lambda c: states.append(c.connected())

    def on_close(c):
        closed.append(c)
        loop.queue_in_loop(c.connect_destroyed)
        loop.queue_in_loop(loop.quit)

    conn.close_callback = on_close
    conn.connect_established()
    b.close()
    _guard(loop)
    loop.loop()
    assert closed == [conn]
    assert states == [True, False]
    assert conn.disconnected()
    assert a.fileno() == -1


def test_send_from_other_thread(loop, pair):
    a, b = pair
    conn = _conn(loop, a)
    conn.connect_established()

    def worker():
        conn.send(b"from-thread")
        loop.quit()

    loop.queue_in_loop(lambda: threading.Thread(target=worker).start())
    _guard(loop)
    loop.loop(10)
    assert conn.connected()
    assert b.recv(32) == b"from-thread"