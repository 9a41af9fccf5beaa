"""
Pytest configuration and shared fixtures.

Provides FakeVarnish, an in-process TCP peer that speaks the varnishd
management protocol with scripted replies.
"""

import select
import socket
import threading
import time

import pytest


def frame(status: int, body: str = "") -> bytes:
    """Encode a management protocol response."""
    data = body.encode("utf-8")
    return f"{status} {len(data)}\n".encode() + data + b"\n"


def default_handler(name: str, args: str):
    if name == "ping":
        return frame(200, f"PONG {args or int(time.time())} 1.0")
    if name == "status":
        return frame(200, "Child in state running")
    return frame(200, "")


class FakeVarnish:
    """Threaded fake varnishd management port.

    ``handler(name, args)`` returns the reply for one request:
    bytes are sent as-is, None closes the connection without replying,
    and a list is played back in order (bytes sent, numbers slept).
    ``split_delay`` delays the body of every 200/other reply after its
    header line.
    """

    def __init__(self, handler=None, split_delay: float = 0.0):
        self.handler = handler or default_handler
        self.split_delay = split_delay
        self.requests = []
        self.connections = 0
        self.interleaved = False
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._conns = []
        self._threads = []
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(5)
        self._sock.settimeout(0.1)

    @property
    def port(self) -> int:
        return self._sock.getsockname()[1]

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    def commands(self):
        """Command names received so far."""
        with self._lock:
            return [line.split(" ", 1)[0] for line in self.requests]

    def wait_for(self, predicate, timeout: float = 3.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    def start(self):
        thread = threading.Thread(target=self._accept_loop, daemon=True)
        thread.start()
        self._threads.append(thread)
        return self

    def stop(self):
        self._stop.set()
        self._sock.close()
        with self._lock:
            conns = list(self._conns)
        for conn in conns:
            try:
                conn.close()
            except OSError:
                pass
        for thread in self._threads:
            thread.join(timeout=2.0)

    def _accept_loop(self):
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with self._lock:
                self.connections += 1
                self._conns.append(conn)
            thread = threading.Thread(target=self._serve, args=(conn,), daemon=True)
            thread.start()
            self._threads.append(thread)

    def _pending(self, conn, buffer: bytearray) -> bool:
        if buffer:
            return True
        readable, _, _ = select.select([conn], [], [], 0)
        return bool(readable)

    def _serve(self, conn):
        buffer = bytearray()
        conn.settimeout(0.1)
        try:
            while not self._stop.is_set():
                end = buffer.find(b"\n")
                if end == -1:
                    try:
                        chunk = conn.recv(4096)
                    except socket.timeout:
                        continue
                    if not chunk:
                        return
                    buffer.extend(chunk)
                    continue

                line = bytes(buffer[:end]).decode("utf-8")
                del buffer[: end + 1]
                with self._lock:
                    self.requests.append(line)
                name, _, args = line.partition(" ")

                if name == "quit":
                    conn.sendall(frame(500, "Closing CLI connection"))
                    return

                reply = self.handler(name, args)
                if reply is None:
                    return
                if isinstance(reply, list):
                    for part in reply:
                        if isinstance(part, (int, float)):
                            time.sleep(part)
                        else:
                            conn.sendall(part)
                    continue

                header, _, body = reply.partition(b"\n")
                conn.sendall(header + b"\n")
                if self.split_delay:
                    time.sleep(self.split_delay)
                if self._pending(conn, buffer):
                    self.interleaved = True
                conn.sendall(body)
        except OSError:
            return
        finally:
            conn.close()


@pytest.fixture
def fake_varnish():
    server = FakeVarnish().start()
    yield server
    server.stop()


@pytest.fixture
def make_varnish():
    """Factory for FakeVarnish instances with custom handlers."""
    servers = []

    def factory(handler=None, split_delay: float = 0.0):
        server = FakeVarnish(handler, split_delay).start()
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.stop()
