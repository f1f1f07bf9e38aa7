"""
utils/validators.py
Input validation and sanitization functions
"""

import re
from datetime import timedelta
from typing import Tuple

from utils.constants import CMDLINE_MAX_LEN, PORT_MAX, PORT_MIN, Protocol

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)$", re.IGNORECASE)
_DURATION_UNITS = {"ms": "milliseconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def validate_port(port: int) -> Tuple[bool, str]:
    """
    Validate that port number is in valid range [1-65535].

    Args:
        port: Port number to validate

    Returns:
        (is_valid, error_message) tuple
    """
    if not isinstance(port, int) or isinstance(port, bool):
        return (False, "Port must be an integer")

    if port < PORT_MIN or port > PORT_MAX:
        return (False, f"Port {port} out of valid range [{PORT_MIN}-{PORT_MAX}]")

    return (True, "")


def validate_proto(proto: str) -> Tuple[bool, str]:
    """Validate a transport protocol name (tcp|udp)."""
    if proto not in {p.value for p in Protocol}:
        return (False, f"Unsupported protocol {proto!r} (expected tcp or udp)")
    return (True, "")


def compact_cmdline(cmdline: str, max_length: int = CMDLINE_MAX_LEN) -> str:
    """
    Flatten a process command line onto one line and bound its length.

    Newlines become spaces; anything beyond max_length is cut and marked
    with a trailing ellipsis.
    """
    if not cmdline or not isinstance(cmdline, str):
        return ""

    flat = cmdline.strip().replace("\r\n", " ").replace("\n", " ")
    if len(flat) > max_length:
        flat = flat[:max_length] + "…"
    return flat


def parse_duration(text: str) -> timedelta:
    """
    Parse "500ms", "10s", "30m", "24h" or "7d" into a timedelta.

    Raises ValueError on anything else.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError("Duration is empty")

    m = _DURATION_RE.match(text.strip())
    if not m:
        raise ValueError(f"Invalid duration {text!r} (expected e.g. 500ms, 10s, 30m, 24h, 7d)")

    amount = float(m.group(1))
    unit = _DURATION_UNITS[m.group(2).lower()]
    return timedelta(**{unit: amount})


__all__ = ["validate_port", "validate_proto", "compact_cmdline", "parse_duration"]
