import socket
import threading
import time
from contextlib import contextmanager

import pytest

from pasvftp.event_loop import EventLoop
from pasvftp.inet_address import InetAddress
from pasvftp.tcp_server import TcpServer


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _recv_exact(sock, size):
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


@contextmanager
def serving(thread_num=0, configure=None):
    ready = threading.Event()
    holder = {}

    def target():
        loop = EventLoop()
        server = TcpServer(loop, InetAddress("127.0.0.1", 0))
        server.set_thread_num(thread_num)
        if configure is not None:
            configure(server)
        server.start()
        holder.update(loop=loop, server=server)
        ready.set()
        try:
            loop.loop()
        finally:
            server.stop()
            loop.close()

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    assert ready.wait(5)
    try:
        yield holder["server"]
    finally:
        loop = holder["loop"]
        loop.queue_in_loop(loop.quit)
        thread.join(5)


def _echo(server):
    server.message_callback = lambda conn, buf, _t: conn.send(buf.retrieve_as_bytes())


@pytest.mark.parametrize("thread_num", [0, 2])
def test_echo_round_trip(thread_num):
    with serving(thread_num, _echo) as server:
        address = InetAddress("127.0.0.1", server.local_address.port)
        assert address == server.local_address
        with socket.create_connection((address.to_ip(), address.port), timeout=5) as client:
            payload = b"hello over the loop" * 50
            client.sendall(payload)
            assert _recv_exact(client, len(payload)) == payload


def test_connections_are_named_in_order_and_removed_on_close():
    events = []

    def configure(server):
        server.connection_callback = lambda conn: events.append((conn.name, conn.connected()))

    with serving(0, configure) as server:
        assert server.name == InetAddress("127.0.0.1", 0).to_ip_port()
        port = server.local_address.port
        with socket.create_connection(("127.0.0.1", port), timeout=5):
            assert _wait_for(lambda: len(events) >= 1)
        with socket.create_connection(("127.0.0.1", port), timeout=5):
            assert _wait_for(lambda: len(events) >= 3)
        assert _wait_for(lambda: len(events) >= 4)
        assert _wait_for(lambda: not server.connections)

    established = [name for name, up in events if up]
    closed = [name for name, up in events if not up]
    assert established == [server.name + "#1", server.name + "#2"]
    assert sorted(closed) == sorted(established)


def test_live_connection_is_tracked():
    with serving(1, _echo) as server:
        port = server.local_address.port
        with socket.create_connection(("127.0.0.1", port), timeout=5):
            assert _wait_for(lambda: len(server.connections) == 1)
            (conn,) = server.connections.values()
            assert conn.local_address == InetAddress("127.0.0.1", port)
            assert conn.peer_address.to_ip() == "127.0.0.1"


def test_name_and_bound_port():
    with EventLoop() as loop:
        server = TcpServer(loop, InetAddress("127.0.0.1", 0))
        try:
            assert server.name == InetAddress("127.0.0.1", 0).to_ip_port()
            assert server.local_address.port > 0
        finally:
            server.stop()


def test_negative_thread_count_is_rejected():
    with EventLoop() as loop:
        server = TcpServer(loop, InetAddress("127.0.0.1", 0))
        try:
            with pytest.raises(ValueError):
                server.set_thread_num(-1)
        finally:
            server.stop()