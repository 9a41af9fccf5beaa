"""Client configuration.

A ClientConfig is an immutable snapshot: the client takes one at connect
time, and setters on the client replace the snapshot so that changes only
affect the next connection.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional, Tuple

# Default management port of varnishd
DEFAULT_PORT = 6082

# We assume varnishd on localhost
DEFAULT_HOST = "localhost"

# Seconds each blocking socket operation may take. None blocks forever.
DEFAULT_TIMEOUT = 1.0

# Seconds between keep-alive pings
KEEP_ALIVE_INTERVAL = 5.0

ENV_HOST = "KLARLACK_HOST"
ENV_PORT = "KLARLACK_PORT"


def parse_port(value: Any) -> int:
    """Validate a TCP port number given as int or string."""
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port: {value!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range: {port}")
    return port


def parse_server(server: str) -> Tuple[str, int]:
    """Split ``"hostname"`` or ``"hostname:port"`` into (host, port).

    The port defaults to DEFAULT_PORT. Bracketed IPv6 literals
    (``"[::1]:6082"``) are accepted.
    """
    server = server.strip()
    if not server:
        raise ValueError("server cannot be empty")

    if server.startswith("["):
        host, sep, rest = server[1:].partition("]")
        if not sep:
            raise ValueError(f"Unterminated IPv6 address: {server!r}")
        if not rest:
            return host, DEFAULT_PORT
        if not rest.startswith(":"):
            raise ValueError(f"Invalid server address: {server!r}")
        return host, parse_port(rest[1:])

    host, sep, port = server.partition(":")
    if not host:
        raise ValueError(f"Missing host in server address: {server!r}")
    if not sep or not port:
        return host, DEFAULT_PORT
    return host, parse_port(port)


@dataclass(slots=True, frozen=True)
class ClientConfig:
    """Connection settings for a VarnishClient.

    Attributes:
        host: Hostname or IP address of varnishd.
        port: Management port.
        timeout: Seconds any single connect/read/write may block.
            None disables timeouts.
        keep_alive: Ping varnishd periodically to keep the connection open.
        keep_alive_interval: Seconds between keep-alive pings.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout: Optional[float] = DEFAULT_TIMEOUT
    keep_alive: bool = False
    keep_alive_interval: float = KEEP_ALIVE_INTERVAL

    def __post_init__(self):
        object.__setattr__(self, "port", parse_port(self.port))
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive or None, got {self.timeout}")
        if self.keep_alive_interval <= 0:
            raise ValueError(
                f"keep_alive_interval must be positive, got {self.keep_alive_interval}"
            )

    @property
    def server(self) -> str:
        """Host and port as ``"hostname:port"``."""
        return f"{self.host}:{self.port}"

    @classmethod
    def from_server(cls, server: str, **options: Any) -> ClientConfig:
        """Build a config from a ``"host[:port]"`` string plus options."""
        host, port = parse_server(server)
        return cls(host=host, port=port, **options)

    @classmethod
    def from_env(cls, **options: Any) -> ClientConfig:
        """Build a config from KLARLACK_HOST / KLARLACK_PORT.

        Explicit ``host``/``port`` options win over the environment.
        """
        options.setdefault("host", os.environ.get(ENV_HOST, DEFAULT_HOST))
        options.setdefault("port", os.environ.get(ENV_PORT, str(DEFAULT_PORT)))
        return cls(**options)
