"""klarlack - client for the varnishd management interface."""

__version__ = "0.2.0"

from .client import VarnishClient, is_available
from .config import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT, ClientConfig
from .errors import BrokenConnection, CommandFailed, ConnectError, ErrorKind, VarnishError
from .protocol import StatusCode
from .responses import Pong, VclConfig, parse_pong

__all__ = [
    "BrokenConnection",
    "ClientConfig",
    "CommandFailed",
    "ConnectError",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DEFAULT_TIMEOUT",
    "ErrorKind",
    "Pong",
    "StatusCode",
    "VarnishClient",
    "VarnishError",
    "VclConfig",
    "is_available",
    "parse_pong",
]
