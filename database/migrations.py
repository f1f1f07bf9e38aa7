"""
database/migrations.py - In-memory upgrades for the history document.

v0  no version field (or version 0); either {"ports": {...}} or a bare
    mapping {"<port>/<proto>": [event, ...]}
v1  {"version": 1, "ports": {...}}

Upgrades run on load only; the file is rewritten in the new shape on the
next save.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Tuple

from utils.constants import HISTORY_VERSION
from utils.logger import get_logger

log = get_logger("portik.migrations")


def _v0_to_v1(doc: Dict[str, Any]) -> Dict[str, Any]:
    # documents already carrying "ports" only lack the version stamp
    if "ports" in doc:
        return dict(doc, version=1)
    ports = {k: v for k, v in doc.items() if isinstance(v, list)}
    return {"version": 1, "ports": ports}


MIGRATIONS: List[Tuple[int, str, Callable[[Dict[str, Any]], Dict[str, Any]]]] = [
    (1, "wrap_ports_mapping", _v0_to_v1),
]


def get_version(doc: Dict[str, Any]) -> int:
    try:
        return int(doc.get("version", 0) or 0)
    except (TypeError, ValueError):
        return 0


def migrate_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Bring a loaded document up to HISTORY_VERSION. Returns a new dict."""
    cur = get_version(doc)
    if cur > HISTORY_VERSION:
        log.warning(f"History document v{cur} is newer than supported v{HISTORY_VERSION}")
        return doc
    pending = [(v, d, fn) for v, d, fn in MIGRATIONS if v > cur]
    if not pending:
        log.debug(f"History document v{cur} — up to date")
        return doc
    for v, desc, fn in sorted(pending, key=lambda m: m[0]):
        log.info(f"Applying history migration v{v}: {desc}")
        doc = fn(doc)
    return doc


def clean_events(key: str, raw: Any, parse: Callable[[dict], Any]) -> list:
    """Parse raw event dicts for one key, skipping malformed entries."""
    if not isinstance(raw, list):
        log.warning(f"History entry {key!r} is not a list — skipped")
        return []
    out = []
    for i, item in enumerate(raw):
        try:
            out.append(parse(item))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            log.warning(f"Skipping malformed history event {key}[{i}]: {exc}")
    return out
