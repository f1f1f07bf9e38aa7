"""
core/connections.py
Connection statistics for one port (conn) and across ports (top).

Clients are keyed by remote IP; an empty remote IP is counted as
"(unknown)". Every ranking is by count descending, then by IP or port
ascending, so output is stable.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from core.model import Connection, Report
from utils.constants import (
    CONN_SAMPLES, TOP_CLIENTS_DEFAULT, TOP_PORTS_DEFAULT, UNKNOWN_REMOTE,
)


@dataclass
class ClientStats:
    remote_ip: str
    total:     int = 0
    by_state:  Dict[str, int] = field(default_factory=dict)
    samples:   List[str] = field(default_factory=list)     # "ip:port" examples


@dataclass
class ClientCount:
    ip:    str
    count: int


@dataclass
class PortTraffic:
    port:    int
    proto:   str
    total:   int
    clients: List[ClientCount] = field(default_factory=list)


def _remote(c: Connection) -> str:
    return c.remote_ip.strip() or UNKNOWN_REMOTE


def parse_state_filter(text: Optional[str]) -> Optional[Set[str]]:
    """'established, time_wait' → {'ESTABLISHED', 'TIME_WAIT'}; empty → None."""
    if not text or not text.strip():
        return None
    states = {t.strip().upper() for t in text.split(",") if t.strip()}
    return states or None


def aggregate_connections(
    conns: Iterable[Connection],
    states: Optional[Set[str]] = None,
    limit: int = 0,
) -> List[ClientStats]:
    """Group connections by remote IP with per-state counts."""
    rows: Dict[str, ClientStats] = {}
    for c in conns:
        state = c.state.strip().upper() or "UNKNOWN"
        if states is not None and state not in states:
            continue
        ip = _remote(c)
        row = rows.setdefault(ip, ClientStats(remote_ip=ip))
        row.total += 1
        row.by_state[state] = row.by_state.get(state, 0) + 1
        if len(row.samples) < CONN_SAMPLES and c.remote_port > 0:
            row.samples.append(f"{ip}:{c.remote_port}")

    out = sorted(rows.values(), key=lambda r: (-r.total, r.remote_ip))
    return out[:limit] if limit > 0 else out


def top_clients(conns: Iterable[Connection], limit: int = TOP_CLIENTS_DEFAULT) -> List[ClientCount]:
    counts = Counter(_remote(c) for c in conns)
    out = [ClientCount(ip, n) for ip, n in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))]
    return out[:limit] if limit > 0 else out


def rank_ports(
    reports: Iterable[Report],
    limit: int = TOP_PORTS_DEFAULT,
    clients: int = TOP_CLIENTS_DEFAULT,
) -> List[PortTraffic]:
    """Busiest ports first; ports without connections are left out."""
    rows = [
        PortTraffic(r.port, r.proto, len(r.connections), top_clients(r.connections, clients))
        for r in reports
        if r.connections
    ]
    rows.sort(key=lambda t: (-t.total, t.port))
    return rows[:limit] if limit > 0 else rows
