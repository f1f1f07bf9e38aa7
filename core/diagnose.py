"""
core/diagnose.py
Diagnostic rule engine.

Rules are plain functions (report, env) -> Diagnostic | None registered in
evaluation order with @rule. diagnose() runs every rule once, in order,
then drops repeated (kind, summary) pairs. The env argument supplies host
facts (root?, firewall, container/WSL/VM) so rules stay pure over their
inputs.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from core.host import HostEnvironment
from core.model import Diagnostic, Report, dedupe_diagnostics
from core.sockets import is_any_addr, is_loopback_addr
from utils.constants import (
    PRIVILEGED_PORT_LIMIT, STATE_LISTEN, STATE_TIME_WAIT,
    AddressFamily, DiagnosticKind, Protocol, Severity,
)

Rule = Callable[[Report, HostEnvironment], Optional[Diagnostic]]

RULES: List[Rule] = []


def rule(fn: Rule) -> Rule:
    RULES.append(fn)
    return fn


def _diag(kind: DiagnosticKind, severity: Severity, summary: str,
          details: str = "", action: str = "") -> Diagnostic:
    return Diagnostic(kind=kind.value, severity=severity.value,
                      summary=summary, details=details, action=action)


def loopback_only(report: Report) -> bool:
    if not report.listeners:
        return False
    return all(
        not is_any_addr(l.local_ip) and is_loopback_addr(l.local_ip)
        for l in report.listeners
    )


# ─── Rules (evaluation order matters) ─────────────────────────────────────────

@rule
def privileged_port(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    if report.port >= PRIVILEGED_PORT_LIMIT or env.is_root():
        return None
    return _diag(
        DiagnosticKind.PERMISSION, Severity.INFO,
        "Privileged port may require admin/root",
        f"Port {report.port} is < {PRIVILEGED_PORT_LIMIT}. On many systems binding "
        "requires root/admin privileges.",
        "Try running with sudo or choose a higher port.",
    )


@rule
def in_use(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    l = report.primary_listener()
    if l is None or l.pid <= 0 or l.state != STATE_LISTEN:
        return None
    return _diag(
        DiagnosticKind.IN_USE, Severity.INFO,
        "Port is in use",
        f"pid {l.pid} ({l.proc_name}) is listening on {report.port}/{report.proto}",
        "Stop or restart the owning process if the port should be free.",
    )


@rule
def pid_missing(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    if not report.listeners or any(l.pid > 0 for l in report.listeners):
        return None
    return _diag(
        DiagnosticKind.PID_MISSING, Severity.WARN,
        "Process details unavailable",
        "Port has listeners but no owning PID/cmdline was found. "
        "This can happen without elevated privileges.",
        "Re-run with sudo/admin, or check OS-specific permissions.",
    )


@rule
def multi_listener(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    pids = {l.pid for l in report.listeners if l.pid > 0}
    if len(pids) < 2:
        return None
    return _diag(
        DiagnosticKind.MULTI_LISTENER, Severity.INFO,
        "Multiple processes are listening on the same port",
        f"PIDs {', '.join(str(p) for p in sorted(pids))} own listeners for this port. "
        "This is common with SO_REUSEPORT or multiple instances.",
        "Check if multiple instances were started, or if the service is "
        "configured to share the port.",
    )


@rule
def ipv6_only(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    if report.proto != Protocol.TCP or not report.listeners:
        return None
    families = {l.family for l in report.listeners}
    if families != {AddressFamily.IPV6.value}:
        return None
    return _diag(
        DiagnosticKind.IPV6_ONLY, Severity.WARN,
        "Only IPv6 listener detected (IPv4 bind confusion)",
        "A process is listening on IPv6 only. Clients connecting over IPv4 "
        "may fail or find the port unreachable.",
        "Bind to [::] with dual-stack enabled, or make the app listen on IPv4 too.",
    )


@rule
def loopback(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    if not loopback_only(report):
        return None
    return _diag(
        DiagnosticKind.LOOPBACK_ONLY, Severity.INFO,
        "Service is bound to loopback only",
        "The listener is bound to 127.0.0.1 or ::1. It will not accept "
        "connections from other hosts.",
        "Bind to 0.0.0.0 or [::] if you need external access.",
    )


@rule
def firewall(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    if not report.listeners or loopback_only(report):
        return None
    fw = env.firewall_status()
    if not fw.active:
        return None
    summary = "Host firewall appears to be active"
    if fw.name:
        summary = f"{summary} ({fw.name})"
    return _diag(
        DiagnosticKind.FIREWALL, Severity.INFO, summary,
        "A local firewall is running; inbound connections to this port may be "
        "blocked even though the service is listening.",
        "Check firewall rules and allow the port if external access is required.",
    )


@rule
def time_wait(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    n = sum(
        1 for c in report.connections
        if c.state == STATE_TIME_WAIT and c.local_port == report.port
    )
    if n == 0:
        return None
    return _diag(
        DiagnosticKind.TIME_WAIT, Severity.INFO,
        "TIME_WAIT sockets present",
        f"Found {n} TIME_WAIT connections involving local port {report.port}. "
        "Rapid restarts can cause transient address-in-use errors.",
        "Wait a few seconds and retry, or use SO_REUSEADDR where appropriate.",
    )


@rule
def zombie(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    l = next((l for l in report.listeners if l.is_zombie), None)
    if l is None:
        return None
    return _diag(
        DiagnosticKind.ZOMBIE, Severity.WARN,
        "Zombie process detected owning the port",
        f"pid {l.pid} ({l.proc_name}) appears to be a zombie. Its parent must reap it.",
        "Restart the parent process, or reboot if the zombie cannot be reaped.",
    )


@rule
def docker(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    d = report.docker
    if not d.mapped:
        return None
    return _diag(
        DiagnosticKind.DOCKER, Severity.INFO,
        "Port is mapped from a Docker container",
        f"Host port {report.port}/{report.proto} is mapped to {d.container_id} "
        f"({d.container_name}) service={d.compose_service} containerPort={d.container_port}",
        "Restart or stop the container rather than the docker-proxy process.",
    )


@rule
def env_container(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    if not env.in_container():
        return None
    return _diag(
        DiagnosticKind.ENV, Severity.INFO,
        "Running inside a container",
        "Socket-to-process mapping can be limited across container/host boundaries.",
        "Run portik on the host; use --docker if relevant.",
    )


@rule
def env_wsl(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    if not env.in_wsl():
        return None
    return _diag(
        DiagnosticKind.ENV, Severity.INFO,
        "Running in WSL",
        "WSL networking can differ from native Linux across the Windows/WSL boundary.",
        "Check whether the port is bound in Windows or inside WSL.",
    )


@rule
def env_vm(report: Report, env: HostEnvironment) -> Optional[Diagnostic]:
    if not env.in_vm():
        return None
    return _diag(
        DiagnosticKind.ENV, Severity.INFO,
        "Running inside a VM",
        "Mapping host ports to services across VM boundaries is limited without "
        "hypervisor integration.",
        "Run portik in the same OS context where the service is running.",
    )


# ─── Engine ───────────────────────────────────────────────────────────────────

def diagnose(report: Report, env: Optional[HostEnvironment] = None) -> List[Diagnostic]:
    """Evaluate every registered rule in order; dedupe by (kind, summary)."""
    env = env or HostEnvironment()
    found: List[Diagnostic] = []
    for fn in RULES:
        d = fn(report, env)
        if d is not None:
            found.append(d)
    return dedupe_diagnostics(found)
