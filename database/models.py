"""
database/models.py
History document model — plain dataclasses, JSON on disk.

Document layout (version 1):
  {
    "version": 1,
    "ports": {
      "5432/tcp": [ OwnershipEvent, ... ]   # oldest first, at most 200
    }
  }

Events are immutable once stored; the store only appends or trims from
the head.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class OwnershipEvent:
    at:              datetime        # timezone-aware
    port:            int
    proto:           str
    signature:       str
    pid:             int = 0
    proc_name:       str = ""
    cmdline:         str = ""
    user:            str = ""
    docker_mapped:   bool = False
    container_id:    str = ""
    container_name:  str = ""
    compose_service: str = ""

    @property
    def key(self) -> str:
        return f"{self.port}/{self.proto}"

    def to_dict(self) -> dict:
        d = {
            "at":        self.at.isoformat(),
            "port":      self.port,
            "proto":     self.proto,
            "signature": self.signature,
        }
        # omit empty optional fields, like the on-disk format always has
        for name in ("pid", "proc_name", "cmdline", "user", "docker_mapped",
                     "container_id", "container_name", "compose_service"):
            value = getattr(self, name)
            if value:
                d[name] = value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "OwnershipEvent":
        at = datetime.fromisoformat(d["at"])
        if at.tzinfo is None:
            at = at.astimezone()
        return cls(
            at=at,
            port=int(d["port"]),
            proto=str(d["proto"]),
            signature=str(d.get("signature", "")),
            pid=int(d.get("pid", 0) or 0),
            proc_name=d.get("proc_name", "") or "",
            cmdline=d.get("cmdline", "") or "",
            user=d.get("user", "") or "",
            docker_mapped=bool(d.get("docker_mapped", False)),
            container_id=d.get("container_id", "") or "",
            container_name=d.get("container_name", "") or "",
            compose_service=d.get("compose_service", "") or "",
        )


def owner_label(e: OwnershipEvent) -> str:
    """Human label used for top-owner counts and pattern summaries.

    reporting.renderer.event_label() repeats this for serialized events.
    """
    if e.docker_mapped:
        label = f"docker:{e.container_name}"
        if e.compose_service:
            label += f" (service={e.compose_service})"
        return label
    if e.proc_name:
        return f"{e.proc_name} ({e.user})" if e.user else e.proc_name
    if e.pid > 0:
        return f"pid:{e.pid}"
    return "none"


@dataclass
class Pattern:
    kind:    str                 # hour-of-day|day-of-week|owner-at-hour
    summary: str
    details: str = ""


@dataclass
class TopOwner:
    label: str
    count: int


@dataclass
class View:
    key:      str
    events:   List[OwnershipEvent] = field(default_factory=list)
    top:      List[TopOwner] = field(default_factory=list)
    patterns: Optional[List[Pattern]] = None

    def to_dict(self) -> dict:
        d = {
            "key":    self.key,
            "events": [e.to_dict() for e in self.events],
            "top":    [{"label": t.label, "count": t.count} for t in self.top],
        }
        if self.patterns is not None:
            d["patterns"] = [
                {"kind": p.kind, "summary": p.summary, "details": p.details}
                for p in self.patterns
            ]
        return d
