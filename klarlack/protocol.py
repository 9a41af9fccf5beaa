"""Wire format of the varnishd management protocol.

Request:  ``<command> <arg1> <arg2> ...\\n``
Response: ``<status> <length>\\n`` followed by ``length`` bytes of content
and a trailing ``\\n``.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Iterable, Tuple

from .errors import BrokenConnection

ENCODING = "utf-8"


class StatusCode(IntEnum):
    """Status codes sent by varnishd in the response header."""

    SYNTAX = 100
    UNKNOWN = 101
    UNIMPL = 102
    TOOFEW = 104
    TOOMANY = 105
    PARAM = 106
    AUTH = 107
    OK = 200
    CANT = 300
    COMMS = 400
    CLOSE = 500


def status_name(status: int) -> str:
    """Symbolic name of a status code, or the number for unknown codes."""
    try:
        return StatusCode(status).name
    except ValueError:
        return str(status)


def encode_request(name: str, args: Iterable[Any] = ()) -> bytes:
    """Serialize a command into a request line.

    Arguments are joined by single spaces and are not quoted; backslashes
    in the argument portion are doubled, matching varnishd's escaping rule.
    """
    params = " ".join(str(arg) for arg in args).replace("\\", "\\\\")
    return f"{name} {params}\n".encode(ENCODING)


def parse_header(line: bytes) -> Tuple[int, int]:
    """Parse a ``<status> <length>`` header line.

    Raises:
        BrokenConnection: If the line is not two integers or the length is
            negative. The stream cannot be resynchronized after that.
    """
    parts = line.split()
    if len(parts) != 2:
        raise BrokenConnection(f"malformed response header {line!r}")
    try:
        status = int(parts[0])
        length = int(parts[1])
    except ValueError:
        raise BrokenConnection(f"malformed response header {line!r}") from None
    if length < 0:
        raise BrokenConnection(f"negative content length in header {line!r}")
    return status, length


def strip_trailer(body: bytes) -> str:
    """Drop the newline that terminates a response body and decode it.

    Raises:
        BrokenConnection: If the body does not end with the newline, which
            means the declared length did not match what was sent.
    """
    if not body.endswith(b"\n"):
        raise BrokenConnection(f"response body not terminated by newline: {body[-16:]!r}")
    return body[:-1].decode(ENCODING, errors="replace")
