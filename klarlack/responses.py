"""Parsers for varnishd response bodies.

Turns the text returned by stats, vcl.list, param.show and ping into
Python structures.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

_PONG_RE = re.compile(r"^PONG\s+(\d+)(?:\s+(.*))?$", re.DOTALL)


@dataclass(slots=True, frozen=True)
class VclConfig:
    """One entry of a vcl.list reply."""
    status: str  # "active", "available", "discarded"
    name: str
    busy: int = 0
    temperature: Optional[str] = None  # "auto/warm" etc. on newer varnishd

    @property
    def active(self) -> bool:
        return self.status == "active"


@dataclass(slots=True, frozen=True)
class Pong:
    """Parsed ping reply."""
    timestamp: int
    extra: str = ""


def parse_stats(text: str) -> Dict[str, int]:
    """Map each counter description to its value.

    stats lines look like ``     1234  Client connections accepted``.
    """
    stats: Dict[str, int] = {}
    for line in text.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) != 2:
            continue
        value, description = parts
        try:
            stats[description] = int(value)
        except ValueError:
            continue
    return stats


def parse_vcl_list(text: str) -> List[VclConfig]:
    """Parse vcl.list output.

    Handles both the ``<status> <busy> <name>`` layout and the newer
    ``<status> <temperature> <busy> <name>`` one.
    """
    configs = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        status, name = parts[0], parts[-1]
        middle = parts[1:-1]
        busy = 0
        temperature = None
        if middle and middle[-1].isdigit():
            busy = int(middle.pop())
        if middle:
            temperature = middle[0]
        configs.append(VclConfig(status=status, name=name, busy=busy, temperature=temperature))
    return configs


def parse_params(text: str) -> Dict[str, str]:
    """Map parameter names to their value (units included) from param.show.

    Only the short listing is understood; indented description lines of
    ``param.show -l`` are skipped.
    """
    params: Dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip() or line[0].isspace():
            continue
        parts = line.split(None, 1)
        params[parts[0]] = parts[1].strip() if len(parts) > 1 else ""
    return params


def parse_pong(text: str) -> Pong:
    """Parse ``PONG <timestamp> [...]``.

    Raises:
        ValueError: If the text is not a ping reply.
    """
    match = _PONG_RE.match(text.strip())
    if not match:
        raise ValueError(f"Not a ping reply: {text!r}")
    return Pong(timestamp=int(match.group(1)), extra=match.group(2) or "")
