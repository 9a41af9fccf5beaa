"""Error taxonomy for the Varnish management client.

Every failure surfaced by the client is a VarnishError carrying an ErrorKind:

- ConnectError: the address could not be resolved or the TCP connect failed.
- BrokenConnection: a read or write did not produce the expected bytes (peer
  closed, timeout, malformed header). The connection is dead; the next
  command reconnects.
- CommandFailed: the exchange completed but varnishd answered with a
  non-200 status. The connection is still healthy.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    CONNECT = "connect_error"
    BROKEN_CONNECTION = "broken_connection"
    COMMAND_FAILED = "command_failed"


class VarnishError(Exception):
    """Base class for all client errors."""

    kind: ErrorKind


class ConnectError(VarnishError):
    """Address resolution or socket connect failure."""

    kind = ErrorKind.CONNECT

    def __init__(self, host: str, port: int, reason: str):
        super().__init__(f"Could not connect to {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason


class BrokenConnection(VarnishError):
    """The connection can no longer be used.

    ``timed_out`` is True when a configured timeout elapsed, so callers can
    tell a slow peer from one that hung up.
    """

    kind = ErrorKind.BROKEN_CONNECTION

    def __init__(self, reason: str, timed_out: bool = False):
        super().__init__(f"Connection broken: {reason}")
        self.reason = reason
        self.timed_out = timed_out


class CommandFailed(VarnishError):
    """varnishd answered with a non-200 status."""

    kind = ErrorKind.COMMAND_FAILED

    def __init__(self, command: str, status: int, content: str):
        from .protocol import status_name

        super().__init__(
            f"Command {command} returned with status {status} ({status_name(status)}): {content}"
        )
        self.command = command
        self.status = status
        self.content = content
