"""
core/model.py
Canonical report model shared by every inspection step.

A Report is assembled once by the inspector; afterwards only its
diagnostics list is filled in. signature() hashes ownership identity only
(port, proto, listener identity tuples, Docker identity) so polling loops
can detect meaningful change cheaply.
"""

from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from utils.constants import AddressFamily


@dataclass
class HostSummary:
    os:       str = ""
    arch:     str = ""
    hostname: str = ""
    kernel:   str = ""
    username: str = ""


@dataclass
class Listener:
    local_ip:   str
    local_port: int
    family:     str = AddressFamily.UNKNOWN.value
    state:      str = ""
    pid:        int = 0            # 0 = owner unknown (usually missing privileges)
    proc_name:  str = ""
    user:       str = ""
    cmdline:    str = ""
    is_zombie:  bool = False


@dataclass
class Connection:
    local_ip:    str
    local_port:  int
    remote_ip:   str
    remote_port: int
    family:      str = AddressFamily.UNKNOWN.value
    state:       str = ""
    pid:         int = 0
    proc_name:   str = ""


@dataclass
class DockerMapping:
    checked:         bool = False    # False → Docker integration not attempted
    mapped:          bool = False
    container_id:    str = ""
    container_name:  str = ""
    compose_service: str = ""
    container_port:  str = ""        # e.g. "5432/tcp"


@dataclass
class Diagnostic:
    kind:     str
    severity: str
    summary:  str
    details:  str = ""
    action:   str = ""


@dataclass
class Report:
    port:        int
    proto:       str
    generated:   datetime
    host:        HostSummary = field(default_factory=HostSummary)
    listeners:   List[Listener] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)
    docker:      DockerMapping = field(default_factory=DockerMapping)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.port}/{self.proto}"

    def primary_listener(self) -> Optional[Listener]:
        """
        First listener with a known PID, else the first listener.
        None when nothing is listening.
        """
        if not self.listeners:
            return None
        for listener in self.listeners:
            if listener.pid > 0:
                return listener
        return self.listeners[0]

    def signature_source(self) -> str:
        parts = [f"{self.port}/{self.proto}|"]
        for l in self.listeners:
            parts.append(f"L:{l.local_ip}:{l.local_port}:{l.proc_name}:{l.pid}|")
        if self.docker.mapped:
            d = self.docker
            parts.append(f"D:{d.container_id}:{d.container_name}:{d.compose_service}|")
        return "".join(parts)

    def signature(self) -> str:
        """SHA-256 hex digest of the ownership identity of this report."""
        return hashlib.sha256(self.signature_source().encode("utf-8")).hexdigest()

    def to_dict(self) -> dict:
        d = asdict(self)
        d["generated"] = self.generated.isoformat()
        d["signature"] = self.signature()
        return d


def dedupe_diagnostics(diags: Iterable[Diagnostic]) -> List[Diagnostic]:
    """Drop repeated (kind, summary) pairs, keeping first occurrence and order."""
    seen: set[tuple[str, str]] = set()
    out: List[Diagnostic] = []
    for d in diags:
        k = (d.kind, d.summary)
        if k in seen:
            continue
        seen.add(k)
        out.append(d)
    return out
