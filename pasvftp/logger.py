"""Coloured server and client log lines for the terminal and a log file."""

from __future__ import annotations

import enum
import sys
import time
from typing import IO, Optional

CONNECT_ON = "connected"
CONNECT_OFF = "disconnected!"

COLOR_RESET = "\033[0m"
COLOR_CYAN = "\033[1m\033[36m"
COLOR_YELLOW = "\033[93m"
COLOR_RED = "\033[91m"
COLOR_BOLD_RED = "\033[1;31m"
COLOR_RED_BG = "\033[41;37m"
COLOR_GREEN = "\033[032m"
COLOR_CONNECT = "\033[1m\033[032m"
COLOR_DISCONNECT = "\033[1m\033[31m"

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogLevel(enum.IntEnum):
    """Severity of a log line."""

    INFO_SUCCESS = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    FATAL = 4

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    LogLevel.INFO_SUCCESS: "INFO:SUCCESS",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
    LogLevel.ERROR: "ERROR",
    LogLevel.FATAL: "FATAL",
}

_SERVER_COLORS = {
    LogLevel.INFO_SUCCESS: COLOR_CYAN,
    LogLevel.WARNING: COLOR_YELLOW,
    LogLevel.ERROR: COLOR_RED,
    LogLevel.FATAL: COLOR_RED_BG,
}

_CLIENT_LEVEL_COLORS = {
    LogLevel.WARNING: COLOR_YELLOW,
    LogLevel.ERROR: COLOR_RED,
    LogLevel.FATAL: COLOR_RED_BG,
}


def _now_str() -> str:
    return time.strftime(TIME_FORMAT, time.localtime())


def format_server_line(level: LogLevel, event: str, time_str: str, colored: bool) -> str:
    """Build one server log line, without the trailing newline."""
    level = LogLevel(level)
    if colored:
        color = _SERVER_COLORS.get(level, COLOR_RESET)
        return f"{color}[{time_str}] [{level.label}] Server: {event}{COLOR_RESET}"
    return f"[{time_str}] [{level.label}] Server: {event}{COLOR_RESET}"


def format_client_line(
    level: LogLevel, ip: str, port: int, event: str, time_str: str, colored: bool
) -> str:
    """Build one client log line, without the trailing newline."""
    level = LogLevel(level)
    if colored:
        color = COLOR_RESET
        if event == CONNECT_ON:
            color = COLOR_CONNECT
        elif event == CONNECT_OFF:
            color = COLOR_DISCONNECT
        color = _CLIENT_LEVEL_COLORS.get(level, color)
        return f"[{time_str}] [{level.label}] {color}Client {ip}:{port} {event}{COLOR_RESET}"
    return f"[{time_str}] [{level.label}] Client {ip}:{port} {event}"


class Logger:
    """Writes log lines to a terminal stream and, optionally, to a log file."""

    def __init__(
        self,
        to_terminal: bool = True,
        to_logfile: bool = False,
        path: str = "server.log",
        stream: Optional[IO[str]] = None,
    ) -> None:
        self.to_terminal = to_terminal
        self.to_logfile = to_logfile
        self._stream = stream
        self._logfile: Optional[IO[str]] = (
            open(path, "a", encoding="utf-8") if to_logfile else None
        )

    def _emit(self, terminal_line: str, file_line: str) -> None:
        if self.to_terminal:
            stream = self._stream if self._stream is not None else sys.stdout
            stream.write(terminal_line + "\n")
            stream.flush()
        if self._logfile is not None:
            self._logfile.write(file_line + "\n")
            self._logfile.flush()

    def server_log(self, level: LogLevel, event: str) -> None:
        """Log an event that concerns the server itself."""
        time_str = _now_str()
        self._emit(
            format_server_line(level, event, time_str, colored=True),
            format_server_line(level, event, time_str, colored=False),
        )

    def client_log(self, level: LogLevel, ip: str, port: int, event: str) -> None:
        """Log an event that concerns the client at ``ip:port``."""
        time_str = _now_str()
        self._emit(
            format_client_line(level, ip, port, event, time_str, colored=True),
            format_client_line(level, ip, port, event, time_str, colored=False),
        )

    def close(self) -> None:
        """Close the log file, if one is open."""
        if self._logfile is not None:
            self._logfile.close()
            self._logfile = None

    def __enter__(self) -> Logger:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


_default_logger = Logger()


def server_log(level: LogLevel, event: str) -> None:
    """Log a server event to standard output."""
    _default_logger.server_log(level, event)


def client_log(level: LogLevel, ip_port: str, event: str) -> None:
    """Log a client event; ``ip_port`` has the form ``ip:port``."""
    ip, sep, port = ip_port.partition(":")
    if not sep:
        raise ValueError(f"address without port: {ip_port!r}")
    _default_logger.client_log(level, ip, int(port), event)