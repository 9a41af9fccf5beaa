"""
TCP transport for the management protocol.

Opens the socket with proper timeouts and provides line-based and
fixed-length reads on top of it. Socket timeouts only bound a single
recv/send, so reads that loop over several recv calls are additionally
bounded by a wall-clock deadline.
"""

from __future__ import annotations

import functools
import logging
import socket
import time
from typing import Optional

from .errors import BrokenConnection, ConnectError

logger = logging.getLogger(__name__)

RECV_SIZE = 4096


def _wrap_socket_error(func):
    """Decorator to translate socket errors into BrokenConnection.

    The transport is closed before the error propagates: a connection that
    failed mid-exchange cannot be resynchronized.
    """
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except BrokenConnection:
            self.close()
            raise
        except socket.timeout as e:
            self.close()
            raise BrokenConnection("timed out", timed_out=True) from e
        except OSError as e:
            self.close()
            raise BrokenConnection(str(e) or type(e).__name__) from e
    return wrapper


def open_connection(host: str, port: int, timeout: Optional[float] = None) -> "Transport":
    """Connect to varnishd.

    Args:
        host: Hostname or IP address.
        port: Management port.
        timeout: Seconds for connect and for each later read/write.
            None blocks indefinitely.

    Raises:
        ConnectError: If the address cannot be resolved or connected.
    """
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        raise ConnectError(host, port, str(e) or type(e).__name__) from e

    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    except OSError as e:
        logger.debug(f"Could not disable Nagle on {host}:{port}: {e}")

    logger.debug(f"Opened transport to {host}:{port} (timeout={timeout})")
    return Transport(sock, timeout)


class Transport:
    """A single open TCP stream to varnishd."""

    def __init__(self, sock: socket.socket, timeout: Optional[float] = None):
        self._sock: Optional[socket.socket] = sock
        self.timeout = timeout
        self._buffer = bytearray()

    @property
    def closed(self) -> bool:
        return self._sock is None

    def _deadline(self) -> Optional[float]:
        if self.timeout is None:
            return None
        return time.monotonic() + self.timeout

    def _fill(self, deadline: Optional[float]) -> None:
        """Receive one chunk into the buffer, honouring the deadline."""
        if self._sock is None:
            raise BrokenConnection("connection is closed")
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise BrokenConnection("timed out", timed_out=True)
            self._sock.settimeout(remaining)
        chunk = self._sock.recv(RECV_SIZE)
        if not chunk:
            raise BrokenConnection("connection closed by peer")
        self._buffer.extend(chunk)

    @_wrap_socket_error
    def read_line(self) -> bytes:
        """Read up to and including the next newline."""
        deadline = self._deadline()
        while True:
            end = self._buffer.find(b"\n")
            if end != -1:
                line = bytes(self._buffer[: end + 1])
                del self._buffer[: end + 1]
                return line
            self._fill(deadline)

    @_wrap_socket_error
    def read_exact(self, size: int) -> bytes:
        """Read exactly ``size`` bytes."""
        deadline = self._deadline()
        while len(self._buffer) < size:
            self._fill(deadline)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    @_wrap_socket_error
    def write(self, data: bytes) -> None:
        if self._sock is None:
            raise BrokenConnection("connection is closed")
        self._sock.settimeout(self.timeout)
        self._sock.sendall(data)

    def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        sock, self._sock = self._sock, None
        if sock is None:
            return
        self._buffer.clear()
        try:
            sock.close()
        except OSError as e:
            logger.debug(f"Error closing socket: {e}")
