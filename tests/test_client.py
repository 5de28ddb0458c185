import io
import threading
import time
from contextlib import contextmanager

import pytest

from pasvftp.client import PROMPT_DISCONNECTED, FtpClient, help_text, split
from pasvftp.message import FileInfo
from pasvftp.server import FtpServer


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@contextmanager
def running_server(root):
    holder = {}
    created = threading.Event()

    def target():
        try:
            holder["server"] = FtpServer(root=root, port=0, thread_num=1)
        finally:
            created.set()
        holder["server"].run()

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    assert created.wait(5)
    server = holder["server"]
    assert server.started.wait(5)
    try:
        yield server
    finally:
        server.stop()
        thread.join(5)


def test_split_drops_empty_pieces():
    assert split("  upload  a b ", " ") == ["upload", "a", "b"]
    assert split("a,,b", ",") == ["a", "b"]
    assert split("", " ") == []
    assert split("   ", " ") == []


def test_help_text_lists_commands():
    text = help_text()
    for command in ("pasv", "upload", "download", "exit"):
        assert command in text


def test_controller_help_and_exit():
    out = io.StringIO()
    FtpClient().controller(io.StringIO("help\n\nexit\nhelp\n"), out)
    output = out.getvalue()
    assert output.count(help_text()) == 1
    assert output.count(PROMPT_DISCONNECTED + ": ") == 3


def test_controller_reports_errors_and_stops_at_eof(tmp_path):
    out = io.StringIO()
    source = tmp_path / "f.txt"
    source.write_text("x")
    FtpClient().controller(io.StringIO(f"upload {source} docs f.txt\n"), out)
    assert "error:" in out.getvalue()


def test_transfer_without_data_connection_raises(tmp_path):
    client = FtpClient()
    with pytest.raises(ConnectionError):
        client.download_file(tmp_path, "docs", "a.txt")
    assert not (tmp_path / "a.txt").exists()


def test_recv_without_connection_raises():
    with pytest.raises(ConnectionError):
        FtpClient().recv_message()


def test_unknown_action_round_trip(tmp_path):
    with running_server(tmp_path) as server:
        with FtpClient("127.0.0.1", server.address.port) as client:
            client.connect()
            client.send_message(FileInfo(action="LIST").to_bytes())
            assert client.recv_message() == b"ERROR: Unknown action"


def test_upload_and_download(tmp_path):
    root = tmp_path / "root"
    local = tmp_path / "local"
    local.mkdir()
    source = local / "data.bin"
    payload = bytes(range(256)) * 13
    source.write_bytes(payload)
    target = root / "docs" / "data.bin"
    out_dir = tmp_path / "out"
    out_dir.mkdir()

    with running_server(root) as server:
        with FtpClient("127.0.0.1", server.address.port) as client:
            client.connect()
            assert client.open_data_connection() > 0
            assert client.connected
            client.upload_file(source, "docs", "data.bin")
            assert not client.connected
            assert _wait_for(lambda: target.exists() and target.read_bytes() == payload)

            client.open_data_connection()
            path = client.download_file(out_dir, "docs", "data.bin")
            assert path == out_dir / "data.bin"
            assert path.read_bytes() == payload


def test_controller_drives_transfers(tmp_path):
    root = tmp_path / "root"
    source = tmp_path / "note.txt"
    source.write_bytes(b"some note text")
    target = root / "notes" / "note.txt"

    with running_server(root) as server:
        with FtpClient("127.0.0.1", server.address.port) as client:
            client.connect()
            out = io.StringIO()
            client.controller(io.StringIO(f"pasv\nupload {source} notes note.txt\nexit\n"), out)
            assert "error:" not in out.getvalue()
            assert _wait_for(lambda: target.exists() and target.read_bytes() == source.read_bytes())