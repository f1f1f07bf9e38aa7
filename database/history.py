"""
database/history.py
Per-user ownership history, one JSON document at ~/.portik/history.json.

The store is loaded, modified and written back whole on every record().
There is no file locking: two writers racing means the last save wins.
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from database.migrations import clean_events, migrate_document
from database.models import OwnershipEvent, TopOwner, View, owner_label
from database.patterns import detect_patterns
from utils.constants import (
    HISTORY_DIR_NAME, HISTORY_FILE_NAME, HISTORY_MAX_ENTRIES, HISTORY_VERSION,
    TOP_OWNERS_LIMIT, Protocol,
)
from utils.logger import get_logger

log = get_logger("portik.history")


# ─── Custom Exceptions ────────────────────────────────────────────────────────

class HistoryError(RuntimeError):
    """History document could not be read or written."""


class HistoryPathError(HistoryError):
    """Per-user storage location could not be resolved."""


def default_history_path() -> Path:
    try:
        home = Path.home()
    except (RuntimeError, KeyError) as exc:
        raise HistoryPathError(f"Cannot resolve home directory: {exc}") from exc
    return home / HISTORY_DIR_NAME / HISTORY_FILE_NAME


def top_owners(events: List[OwnershipEvent], limit: int = TOP_OWNERS_LIMIT) -> List[TopOwner]:
    """Most frequent owner labels, ties kept in first-seen order."""
    counts = Counter(owner_label(e) for e in events)
    return [TopOwner(label, n) for label, n in counts.most_common(limit)]


# ─── Store ────────────────────────────────────────────────────────────────────

@dataclass
class Store:
    version: int = HISTORY_VERSION
    ports:   Dict[str, List[OwnershipEvent]] = field(default_factory=dict)

    def append(self, event: OwnershipEvent) -> bool:
        """
        Add an event under its key. Returns False when it was dropped
        because its signature matches the immediately preceding event.
        """
        events = self.ports.setdefault(event.key, [])
        events.append(event)
        # lookback is one step only: A,B,A keeps all three
        if len(events) >= 2 and events[-1].signature == events[-2].signature:
            events.pop()
            return False
        if len(events) > HISTORY_MAX_ENTRIES:
            del events[:len(events) - HISTORY_MAX_ENTRIES]
        return True

    def view_port_since(self, port: int, cutoff: datetime, detect: bool = False) -> View:
        merged: List[OwnershipEvent] = []
        key = ""
        for proto in (Protocol.TCP.value, Protocol.UDP.value):
            k = f"{port}/{proto}"
            hits = [e for e in self.ports.get(k, []) if e.at > cutoff]
            if hits and not key:
                key = k
            merged.extend(hits)

        merged.sort(key=lambda e: e.at)
        view = View(key=key, events=merged, top=top_owners(merged))
        if detect:
            view.patterns = detect_patterns(merged)
        return view

    def recent_owners(self, port: int, proto: str, n: int) -> List[OwnershipEvent]:
        if n <= 0:
            return []
        return list(self.ports.get(f"{port}/{proto}", [])[-n:])

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "ports": {k: [e.to_dict() for e in evs] for k, evs in self.ports.items()},
        }

    @classmethod
    def from_dict(cls, doc: dict) -> "Store":
        doc = migrate_document(doc)
        raw_ports = doc.get("ports") or {}
        if not isinstance(raw_ports, dict):
            raise HistoryError("History document has a malformed 'ports' section")
        ports = {
            k: clean_events(k, raw, OwnershipEvent.from_dict)
            for k, raw in raw_ports.items()
        }
        return cls(version=HISTORY_VERSION, ports=ports)


# ─── File-backed handle ───────────────────────────────────────────────────────

class History:
    """
    Load/save the store at an explicit path (default ~/.portik/history.json).

    The path is resolved eagerly so an unresolvable home directory fails at
    construction, not halfway through a watch loop.
    """

    def __init__(self, path: Optional[str | Path] = None):
        self.path = Path(path).expanduser() if path else default_history_path()

    def load(self) -> Store:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Store()
        except OSError as exc:
            raise HistoryError(f"Cannot read {self.path}: {exc}") from exc

        try:
            doc = json.loads(text)
        except json.JSONDecodeError as exc:
            raise HistoryError(f"Corrupt history file {self.path}: {exc}") from exc
        if not isinstance(doc, dict):
            raise HistoryError(f"Corrupt history file {self.path}: top level is not an object")
        return Store.from_dict(doc)

    def save(self, store: Store) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(store.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            raise HistoryError(f"Cannot write {self.path}: {exc}") from exc

    def record(self, report) -> bool:
        """
        Append an ownership event built from `report` and persist.

        `report` needs port, proto, generated, docker, signature() and
        primary_listener(). Returns whether a new event was stored.
        """
        store = self.load()
        stored = store.append(event_from_report(report))
        self.save(store)
        log.debug(f"{report.port}/{report.proto}: {'recorded' if stored else 'unchanged'}")
        return stored


def event_from_report(report) -> OwnershipEvent:
    fields = dict(
        at=report.generated,
        port=report.port,
        proto=report.proto,
        signature=report.signature(),
    )
    l = report.primary_listener()
    if l is not None:
        fields.update(pid=l.pid, proc_name=l.proc_name, cmdline=l.cmdline, user=l.user)
    d = report.docker
    if d is not None and d.mapped:
        fields.update(
            docker_mapped=True,
            container_id=d.container_id,
            container_name=d.container_name,
            compose_service=d.compose_service,
        )
    return OwnershipEvent(**fields)
