"""
core/trace.py
Ordered, human-readable explanation of how a port ended up owned:
listener → loopback → docker → process chain → started-by →
connections → docker-proxy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from core.connections import top_clients
from core.model import Report
from core.proctree import Proc, StartedBy
from core.sockets import is_loopback_addr
from utils.constants import TRACE_CHAIN_SHOWN, TraceKind


@dataclass
class TraceStep:
    kind:    str
    summary: str
    details: str = ""


def _step(kind: TraceKind, summary: str, details: str = "") -> TraceStep:
    return TraceStep(kind.value, summary, details)


def _proc_label(name: str, user: str) -> str:
    name = name or "unknown"
    return f"{name} ({user})" if user else name


def chain_summary(chain: Sequence[Proc], limit: int = TRACE_CHAIN_SHOWN) -> str:
    """'node(812) <- bash(700) <- ...' for the first `limit` processes."""
    if not chain:
        return "-"
    shown = chain[:limit] if limit > 0 else chain
    parts = [f"{p.name.strip() or '?'}({p.pid})" for p in shown]
    if len(shown) < len(chain):
        parts.append("...")
    return " <- ".join(parts)


def is_docker_proxy(name: str, cmdline: str) -> bool:
    return "docker-proxy" in name.lower() or "docker-proxy" in cmdline.lower()


def trace_steps(report: Report, chain: Sequence[Proc] = (),
                started: Optional[StartedBy] = None) -> List[TraceStep]:
    if not report.listeners:
        return [_step(TraceKind.NO_LISTENER, "No listeners detected for this port")]

    steps: List[TraceStep] = []
    l = report.primary_listener()

    steps.append(_step(
        TraceKind.LISTENER,
        f"Listener pid={l.pid} {_proc_label(l.proc_name, l.user)}",
        f"Address {l.local_ip.strip() or '*'}:{l.local_port} {l.state.upper()}",
    ))
    if is_loopback_addr(l.local_ip):
        steps.append(_step(
            TraceKind.LOOPBACK,
            "Listener is bound to loopback only",
            "External hosts will not reach this port unless it binds to 0.0.0.0 or [::].",
        ))

    d = report.docker
    if d.mapped:
        steps.append(_step(
            TraceKind.DOCKER,
            f"Docker mapping to {d.container_name} ({d.container_id})",
            f"Service={d.compose_service or '-'} containerPort={d.container_port}",
        ))

    if chain:
        steps.append(_step(TraceKind.PROCESS_CHAIN, "Process chain", chain_summary(chain)))

    if started is not None and started.kind and started.known:
        steps.append(_step(TraceKind.STARTED_BY, f"Started by {started.kind}", started.details))

    if report.connections:
        clients = ", ".join(f"{c.ip}({c.count})" for c in top_clients(report.connections))
        steps.append(_step(
            TraceKind.CONNECTIONS,
            f"{len(report.connections)} active connections",
            f"Top clients: {clients}",
        ))

    if is_docker_proxy(l.proc_name, l.cmdline):
        steps.append(_step(
            TraceKind.PROXY,
            "Docker proxy appears to own the listener",
            "The real service may be inside the container.",
        ))
    return steps
