# pasvftp

A small file transfer server and client. They talk over a control
connection that carries length-prefixed messages, and open a separate
passive data connection for every transfer.

The package also holds the reactor-style networking pieces the server is
built on: an `EventLoop` with timers and cross-thread task queues, a
`Poller` (epoll, or poll where epoll is missing), `Channel`s, a growable
`Buffer`, an `Acceptor`, `TcpConnection` and a `TcpServer` that spreads
connections over a pool of loop threads. It needs a POSIX system.

## Install

```
pip install .
```

No third-party libraries are needed.

## Running the server

```
pasvftp-server
```

Options:

| Option | Default | Meaning |
| --- | --- | --- |
| `--root DIR` | `../root` | directory files are stored in; created when missing |
| `--port N` | `6060` | control port |
| `--threads N` | `4` | number of I/O loop threads (0 keeps all connections on the main loop) |

The server logs to standard output with coloured level tags and runs until
interrupted with Ctrl-C.

## Running the client

```
pasvftp-client
```

Options: `--host` (default `localhost`) and `--port` (default `6060`).

The client connects to the server and reads commands from standard input.
The prompt shows `Ftp` in green while a data connection is open.

| Command | Effect |
| --- | --- |
| `help` | list the commands |
| `pasv` | ask the server for a data port and connect to it |
| `upload <file path> <remote dir> <file name>` | send a local file |
| `download <local dir> <remote dir> <file name>` | fetch a remote file |
| `exit` | leave the client |

Each transfer uses up its data connection, so run `pasv` before every
`upload` or `download`. Unknown commands are ignored; socket and message
errors are printed and the prompt continues. End of input also ends the
client.

## Protocol

Every control message is a 4-byte big-endian length followed by an encoded
`FileInfo` record (`pasvftp.message.FileInfo`) with the fields `action`,
`file_name`, `user_dir` and `port`, in protobuf wire format as fields 1 to 4.

* `CONNECT` – the server binds a random port between 1024 and 65535,
  answers `OK` with that port and waits up to 60 seconds for the client to
  connect to it.
* `UPLOAD` – the server stores everything received on the data connection
  as `<root>/<user_dir>/<file_name>`, creating the directory.
* `DOWNLOAD` – the server sends the file on the data connection and closes
  it. When the file does not exist it answers
  `ERROR: File does not exist` on the control connection instead.

An `UPLOAD` or `DOWNLOAD` without a prior `CONNECT` is answered with
`ERROR: No data connection`; an unknown action with
`ERROR: Unknown action`. A frame announcing an empty message or one larger
than 10 MiB makes the server shut the control connection down.

Frames are built with `pasvftp.message.encode_frame` and taken out of a
`Buffer` with `pasvftp.message.iter_frames`.

## Using it from Python

```python
from pasvftp.client import FtpClient

with FtpClient("localhost", 6060) as client:
    client.connect()
    client.open_data_connection()
    client.upload_file("notes.txt", "docs", "notes.txt")
    client.open_data_connection()
    client.download_file(".", "docs", "notes.txt")
```

```python
from pasvftp.server import FtpServer

server = FtpServer("./root", 6060, 4)
server.run()          # blocks; call server.stop() from another thread
```

`FtpServer.address` gives the address the control socket listens on, and
`FtpServer.started` is a `threading.Event` set once it is listening. A
server must be run in the thread that created it.

The networking layer can be used on its own:

```python
from pasvftp.event_loop import EventLoop
from pasvftp.inet_address import InetAddress
from pasvftp.tcp_server import TcpServer

def on_message(conn, buffer, when):
    conn.send(buffer.retrieve_as_bytes())   # echo

with EventLoop() as loop:
    server = TcpServer(loop, InetAddress(port=7000))
    server.message_callback = on_message
    server.set_thread_num(2)
    server.start()
    loop.run_after(60.0, loop.quit)
    loop.loop()
    server.stop()
```

Only one `EventLoop` may exist per thread. `run_at`, `run_after` and
`run_every` schedule timers and return a `TimerId` for `cancel`;
`run_in_loop` and `queue_in_loop` hand work to the loop from other threads.

`pasvftp.logger.Logger` can also append plain log lines to a file
(`Logger(to_logfile=True, path="server.log")`).

## What it does not do

* It does not speak the standard FTP command protocol; only this client
  and server understand each other.
* There is no authentication, no directory listing, no delete or rename,
  and no check that `user_dir` and `file_name` stay inside the root.
* The client does not read the server's error replies on the control
  connection; a failed download can leave it waiting on the data
  connection.

## Tests

```
pip install .[test]
pytest
```