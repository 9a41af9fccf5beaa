"""
Client for the varnishd management interface.

Usage:
    client = VarnishClient.from_address("127.0.0.1:6082")

    client.ping()                       # "PONG 1276598154 1.0"
    client.vcl("load", "newconf", "/etc/varnish/myconf.vcl")
    client.vcl("use", "newconf")
    client.purge("url", ".*")
    stats = client.stats()              # {"Client connections accepted": 42, ...}

    client.disconnect()

All commands go through ``execute()``, which holds a single lock for the
whole request/response exchange and (re)connects lazily.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Dict, List, Optional

from .config import ClientConfig
from .errors import CommandFailed, VarnishError
from .keepalive import KeepAlive
from .protocol import StatusCode, encode_request, parse_header, strip_trailer
from .responses import VclConfig, parse_params, parse_stats, parse_vcl_list
from .transport import Transport, open_connection

logger = logging.getLogger(__name__)

# purge operations that have their own dotted command
PURGE_COMMANDS = ("url", "hash", "list")


class VarnishClient:
    """Connection to one varnishd management port.

    One connection, one command in flight at a time. The connection is
    opened on the first command and re-opened on the next command after it
    broke; failed commands are never retried.
    """

    def __init__(self, config: Optional[ClientConfig] = None):
        """Initialize the client.

        Args:
            config: Connection settings. Defaults to ClientConfig().
        """
        self._config = config if config is not None else ClientConfig()
        self._lock = threading.Lock()
        self._transport: Optional[Transport] = None
        self._keepalive: Optional[KeepAlive] = None

    @classmethod
    def from_address(cls, server: str, **options: Any) -> VarnishClient:
        """Create a client for ``"host"`` or ``"host:port"``.

        Examples:
            VarnishClient.from_address("127.0.0.1")
            VarnishClient.from_address("10.0.0.3:6060", timeout=None, keep_alive=True)
        """
        return cls(ClientConfig.from_server(server, **options))

    @classmethod
    def from_options(cls, **options: Any) -> VarnishClient:
        """Create a client for the default host with the given options."""
        return cls(ClientConfig(**options))

    def __repr__(self) -> str:
        state = "connected" if self.is_connected() else "disconnected"
        return f"<VarnishClient {self.server} {state}>"

    # Configuration. Changes apply to the next connection.

    @property
    def config(self) -> ClientConfig:
        return self._config

    def _update(self, **changes: Any) -> None:
        self._config = dataclasses.replace(self._config, **changes)

    @property
    def host(self) -> str:
        return self._config.host

    @host.setter
    def host(self, value: str) -> None:
        self._update(host=value)

    @property
    def port(self) -> int:
        return self._config.port

    @port.setter
    def port(self, value: int) -> None:
        self._update(port=value)

    @property
    def timeout(self) -> Optional[float]:
        return self._config.timeout

    @timeout.setter
    def timeout(self, value: Optional[float]) -> None:
        self._update(timeout=value)

    @property
    def keep_alive(self) -> bool:
        return self._config.keep_alive

    @keep_alive.setter
    def keep_alive(self, value: bool) -> None:
        self._update(keep_alive=bool(value))

    @property
    def server(self) -> str:
        """The varnishd management address as ``"host:port"``."""
        return self._config.server

    @server.setter
    def server(self, value: str) -> None:
        new = ClientConfig.from_server(value)
        self._update(host=new.host, port=new.port)

    # Connection state

    def is_connected(self) -> bool:
        """True if a connection is open and has not been seen to break.

        Lock-free so the keep-alive thread can ask while a command runs.
        """
        transport = self._transport
        return transport is not None and not transport.closed

    def connect(self) -> None:
        """Open the connection unless it is already open."""
        with self._lock:
            if not self.is_connected():
                self._connect_unlocked()

    def _connect_unlocked(self) -> None:
        config = self._config
        stale, self._keepalive = self._keepalive, None
        if stale is not None:
            stale.stop()

        logger.info(f"Connecting to varnishd at {config.server}")
        self._transport = open_connection(config.host, config.port, config.timeout)

        # If keep alive, we ping the server every few seconds.
        if config.keep_alive:
            self._keepalive = KeepAlive(self, config.keep_alive_interval)
            self._keepalive.start()

    def disconnect(self) -> None:
        """Close the connection to varnishd.

        Sends ``quit`` and discards the reply. Never raises; calling it on a
        closed or never-opened client does nothing. The next command
        reconnects automatically.
        """
        with self._lock:
            keepalive, self._keepalive = self._keepalive, None
            if keepalive is not None:
                keepalive.stop()

            transport, self._transport = self._transport, None
            if transport is not None and not transport.closed:
                try:
                    transport.write(b"quit\n")
                    transport.read_line()
                except VarnishError as e:
                    logger.debug(f"Ignoring error during quit: {e}")
                finally:
                    transport.close()
                logger.info(f"Disconnected from varnishd at {self.server}")

        if keepalive is not None:
            keepalive.join(timeout=1.0)

    def close(self) -> None:
        """Alias for disconnect()."""
        self.disconnect()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.disconnect()

    # Command engine

    def execute(self, name: str, *args: Any) -> str:
        """Send a command to varnishd and return the response text.

        Args:
            name: Command name, e.g. "vcl.load".
            *args: Arguments, converted with str().

        Returns:
            Response content without its trailing newline.

        Raises:
            ConnectError: If (re)connecting failed.
            BrokenConnection: If the connection broke or timed out during
                the exchange. The next call reconnects.
            CommandFailed: If varnishd returned a non-200 status.
        """
        with self._lock:
            if not self.is_connected():
                self._connect_unlocked()
            return self._exchange(name, args)

    def _exchange(self, name: str, args: tuple) -> str:
        """One request/response round trip. Caller holds the lock."""
        transport = self._transport
        request = encode_request(name, args)
        logger.debug(f"> {request!r}")
        completed = False
        try:
            transport.write(request)
            status, length = parse_header(transport.read_line())
            content = strip_trailer(transport.read_exact(length + 1))  # +1 = \n
            completed = True
        finally:
            # A half-read reply would be handed to the next command.
            if not completed:
                transport.close()
        logger.debug(f"< {status} {length}")

        if status != StatusCode.OK:
            raise CommandFailed(name, status, content)
        return content

    def _keepalive_ping(self, keepalive: KeepAlive) -> bool:
        """Ping on behalf of ``keepalive`` without reconnecting.

        Returns False once the connection the keep-alive belongs to is
        gone, which ends the keep-alive loop.
        """
        with self._lock:
            if keepalive is not self._keepalive or not self.is_connected():
                return False
            self._exchange("ping", ())
            return True

    # Commands

    def vcl(self, op: str, *params: Any) -> str:
        """Manipulate the VCL configuration.

            vcl("load", <configname>, <filename>)
            vcl("inline", <configname>, <quoted_VCLstring>)
            vcl("use", <configname>)
            vcl("discard", <configname>)
            vcl("list")
            vcl("show", <configname>)
        """
        return self.execute(f"vcl.{op}", *params)

    def vcl_list(self) -> List[VclConfig]:
        """Loaded VCL configurations."""
        return parse_vcl_list(self.vcl("list"))

    def purge(self, op: str, *regexp_or_args: Any) -> str:
        """Purge objects from the cache or show the purge queue.

            purge("url", <regexp>)
            purge("hash", <regexp>)
            purge("list")
            purge(<custom-field>, <args>)
        """
        command = f"purge.{op}" if op in PURGE_COMMANDS else f"purge {op}"
        return self.execute(command, *regexp_or_args)

    def ping(self, timestamp: Optional[int] = None) -> str:
        """Ping the server. Returns ``PONG <timestamp> ...``."""
        if timestamp is None:
            return self.execute("ping")
        return self.execute("ping", timestamp)

    def stats(self) -> Dict[str, int]:
        """Counter values keyed by description."""
        return parse_stats(self.execute("stats"))

    def param(self, op: str, *args: Any) -> str:
        """Set and show parameters.

            param("show", ["-l"], [<param>])
            param("set", <param>, <value>)
        """
        return self.execute(f"param.{op}", *args)

    def param_show(self, name: Optional[str] = None) -> Dict[str, str]:
        if name is None:
            return parse_params(self.param("show"))
        return parse_params(self.param("show", name))

    def param_set(self, name: str, value: Any) -> None:
        self.param("set", name, value)

    def status(self) -> str:
        """Status string of the child process. See also is_running() and is_stopped()."""
        return self.execute("status")

    def start(self) -> bool:
        """Start the child. Raises CommandFailed if it is already running."""
        self.execute("start")
        return True

    def stop(self) -> bool:
        """Stop the child. Raises CommandFailed if it is already stopped."""
        self.execute("stop")
        return True

    def is_running(self) -> bool:
        return "running" in self.status()

    def is_stopped(self) -> bool:
        return "stopped" in self.status()


def is_available(server: Optional[str] = None, timeout: float = 1.0) -> bool:
    """Check if varnishd answers on its management port.

    Args:
        server: ``"host[:port]"``. Defaults to KLARLACK_HOST/KLARLACK_PORT
            or localhost:6082.
        timeout: Seconds per socket operation.

    Returns:
        True if a ping succeeded.
    """
    if server is None:
        config = ClientConfig.from_env(timeout=timeout)
    else:
        config = ClientConfig.from_server(server, timeout=timeout)
    try:
        with VarnishClient(config) as client:
            client.ping()
            return True
    except VarnishError as e:
        logger.debug(f"varnishd at {config.server} not available: {e}")
        return False
