"""
core/port_parser.py
Port lists for --scan and --daemon.

  "5432,6379,3000-3002"  → [3000, 3001, 3002, 5432, 6379]
  "3002-3000"            → [3000, 3001, 3002]   (reversed ends are swapped)
  " 80 , 443 "           → [80, 443]
"""

from __future__ import annotations

from typing import List

from utils.constants import PORT_MAX, PORT_MIN


class PortParseError(ValueError):
    """Raised when a port list cannot be parsed."""


def parse_port(text: str) -> int:
    text = text.strip()
    try:
        n = int(text, 10)
    except ValueError:
        raise PortParseError(f"not a port number: {text!r}") from None
    if not PORT_MIN <= n <= PORT_MAX:
        raise PortParseError(f"port {n} out of range ({PORT_MIN}-{PORT_MAX})")
    return n


def _expand(token: str) -> range:
    if "-" not in token:
        p = parse_port(token)
        return range(p, p + 1)

    lo_s, hi_s = token.split("-", 1)
    try:
        lo = parse_port(lo_s)
    except PortParseError as exc:
        raise PortParseError(f"invalid range start in {token!r}: {exc}") from None
    try:
        hi = parse_port(hi_s)
    except PortParseError as exc:
        raise PortParseError(f"invalid range end in {token!r}: {exc}") from None
    if lo > hi:
        lo, hi = hi, lo
    return range(lo, hi + 1)


def parse_ports(spec: str) -> List[int]:
    """Comma separated ports and ranges → sorted list without duplicates."""
    if not isinstance(spec, str) or not spec.strip():
        raise PortParseError("empty port list")

    seen = set()
    for token in spec.split(","):
        token = token.strip()
        if token:
            seen.update(_expand(token))

    if not seen:
        raise PortParseError(f"no ports in {spec!r}")
    return sorted(seen)
