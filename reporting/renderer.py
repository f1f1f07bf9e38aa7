"""
reporting/renderer.py
Text and JSON rendering for who / explain / history / blame / trace /
conn / top / scan output.

Layering: works on plain dicts (Report.to_dict(), View.to_dict(),
dataclasses.asdict() of scan rows, trace steps and connection
stats, blame dicts built by the CLI).
Does NOT import core or database.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Iterable, List, Optional

from utils.constants import DiagnosticKind


# ─── Helpers ──────────────────────────────────────────────────────────────────

def dash(s) -> str:
    return str(s) if s not in (None, "", 0) else "-"


def trunc(s: str, n: int) -> str:
    s = s or ""
    return s if len(s) <= n else s[: max(n - 1, 0)] + "…"


def fmt_ip(ip: str) -> str:
    if not ip:
        return "*"
    if ":" in ip and not ip.startswith("["):
        return f"[{ip}]"
    return ip


def fmt_time(iso: str) -> str:
    """ISO timestamp → 'MM-DD HH:MM:SS' in local time."""
    try:
        return datetime.fromisoformat(iso).astimezone().strftime("%m-%d %H:%M:%S")
    except (TypeError, ValueError):
        return str(iso)


def event_label(e: dict) -> str:
    """
    Owner label for a serialized ownership event.

    Mirrors database.models.owner_label(), which works on OwnershipEvent
    objects; reporting may not import database, so keep the two in step.
    """
    if e.get("docker_mapped"):
        label = f"docker:{e.get('container_name', '')}"
        if e.get("compose_service"):
            label += f" (service={e['compose_service']})"
        return label
    if e.get("proc_name"):
        return f"{e['proc_name']} ({e['user']})" if e.get("user") else e["proc_name"]
    if e.get("pid"):
        return f"pid:{e['pid']}"
    return "none"


# ─── Renderer ─────────────────────────────────────────────────────────────────

class ReportRenderer:
    """
    Render command output either as human text or as indented JSON.

    In JSON mode every method returns json.dumps() of its input (plus
    light wrapping for history/scan) so output is machine readable.
    """

    def __init__(self, as_json: bool = False):
        self.as_json = as_json

    @staticmethod
    def _dump(obj) -> str:
        return json.dumps(obj, indent=2, default=str)

    # ── who ───────────────────────────────────────────────────────────────────

    def who(self, report: dict, recent: Optional[Iterable[dict]] = None) -> str:
        return self._who(report, recent, causes=False)

    def explain(self, report: dict, recent: Optional[Iterable[dict]] = None) -> str:
        """who() plus the diagnostics grouped into LIKELY CAUSES."""
        return self._who(report, recent, causes=True)

    def _who(self, report: dict, recent, causes: bool) -> str:
        recent = list(recent or [])
        if self.as_json:
            out = dict(report)
            if recent:
                out["recent_owners"] = recent
            return self._dump(out)

        lines: List[str] = [f"PORT {report['port']}/{report['proto']}"]
        listeners = report.get("listeners") or []
        if not listeners:
            lines.append("  (no listeners)")
        else:
            lines.append("")
            lines.append("  STATE   ADDRESS                  PID     USER        PROCESS       CMD")
            lines.append("  -----   -----------------------  ------  ----------  ------------  ---")
            for l in listeners:
                addr = f"{fmt_ip(l.get('local_ip', ''))}:{l.get('local_port', 0)}"
                lines.append(
                    f"  {l.get('state', ''):<7} {addr:<24} {dash(l.get('pid')):<6}  "
                    f"{dash(l.get('user')):<10}  {dash(l.get('proc_name')):<12}  "
                    f"{dash(l.get('cmdline'))}"
                )

        conns = report.get("connections") or []
        if conns:
            lines.append("")
            lines.append(f"CONNECTIONS ({len(conns)})")
            for c in conns:
                lines.append(
                    f"  {c.get('state', ''):<12} {fmt_ip(c.get('local_ip', ''))}:{c.get('local_port')}"
                    f" -> {fmt_ip(c.get('remote_ip', ''))}:{c.get('remote_port')}"
                    f"  {dash(c.get('proc_name'))}"
                )

        docker = report.get("docker") or {}
        if docker.get("checked"):
            lines.append("")
            if docker.get("mapped"):
                lines.append(
                    f"DOCKER {docker.get('container_id')} ({docker.get('container_name')}) "
                    f"service={dash(docker.get('compose_service'))} "
                    f"port={docker.get('container_port')}"
                )
            else:
                lines.append("DOCKER not mapped")

        if recent:
            lines.append("")
            lines.append("RECENT OWNERS")
            for e in recent:
                lines.append(f"  {fmt_time(e.get('at', ''))}  {event_label(e)}")

        diags = report.get("diagnostics") or []
        lines.append("")
        lines.append("SUMMARY")
        if not diags:
            lines.append("  - No hints available")
        for d in diags:
            lines.append(f"  - [{d.get('severity', '').upper()}] {d.get('summary', '')}")
            if d.get("details"):
                lines.append(f"      {d['details']}")

        if causes:
            lines.extend(_likely_causes(diags))

        actions = _dedupe([d.get("action", "") for d in diags])
        if actions:
            lines.append("")
            lines.append("NEXT ACTIONS")
            lines.extend(f"  - {a}" for a in actions)

        return "\n".join(lines) + "\n"

    def change(self, report: dict) -> str:
        """One-line summary used by watch/daemon when ownership changes."""
        if self.as_json:
            return json.dumps(report, default=str)
        listeners = report.get("listeners") or []
        owner = "free"
        if listeners:
            primary = next((l for l in listeners if l.get("pid", 0) > 0), listeners[0])
            owner = f"{dash(primary.get('proc_name'))} pid={dash(primary.get('pid'))}"
        return (f"{fmt_time(report.get('generated', ''))}  "
                f"{report['port']}/{report['proto']}  {owner}  "
                f"sig={str(report.get('signature', ''))[:12]}")

    # ── history ───────────────────────────────────────────────────────────────

    def history(self, port: int, view: dict, since: str = "") -> str:
        if self.as_json:
            return self._dump({"port": port, "since": since, **view})

        key = view.get("key") or f"{port}"
        lines = [f"HISTORY {key}" + (f" (since {since})" if since else "")]
        events = view.get("events") or []
        if not events:
            lines.append("  (no events in window)")
            return "\n".join(lines) + "\n"

        for e in events:
            lines.append(f"  {fmt_time(e.get('at', ''))}  {e.get('proto', ''):<3}  {event_label(e)}")

        top = view.get("top") or []
        if top:
            lines.append("")
            lines.append("TOP OWNERS")
            for t in top:
                lines.append(f"  {t['count']:>4}  {t['label']}")

        patterns = view.get("patterns")
        if patterns is not None:
            lines.append("")
            lines.append("PATTERNS")
            if not patterns:
                lines.append("  (none detected)")
            for p in patterns:
                lines.append(f"  - {p['summary']}")
        return "\n".join(lines) + "\n"

    # ── blame ─────────────────────────────────────────────────────────────────

    def blame(self, data: dict) -> str:
        if self.as_json:
            return self._dump(data)

        lines = [f"PORT {data['port']}/{data['proto']}"]
        target = data.get("target")
        if not target:
            lines.append("  (no listener to blame)")
            return "\n".join(lines) + "\n"

        lines.append(f"  owner pid={target.get('pid')} {dash(target.get('proc_name'))}")
        lines.append("")
        lines.append("ANCESTRY")
        for depth, p in enumerate(data.get("chain") or []):
            indent = "  " * (depth + 1)
            lines.append(f"{indent}{p.get('pid')} {dash(p.get('name'))} ({dash(p.get('user'))})"
                         f"  {trunc(p.get('cmdline', ''), 80)}")

        sb = data.get("started_by") or {}
        lines.append("")
        details = f" — {sb['details']}" if sb.get("details") else ""
        lines.append(f"STARTED BY {sb.get('kind', 'unknown')}{details}")
        return "\n".join(lines) + "\n"

    # ── trace ─────────────────────────────────────────────────────────────────

    def trace(self, port: int, proto: str, steps: List[dict]) -> str:
        if self.as_json:
            return self._dump({"port": port, "proto": proto, "steps": steps})

        lines = [f"TRACE {port}/{proto}"]
        if not steps:
            lines.append("  (no trace data)")
        for s in steps:
            lines.append(f"  - {s['summary']}")
            if s.get("details"):
                lines.append(f"    {s['details']}")
        return "\n".join(lines) + "\n"

    # ── connections ───────────────────────────────────────────────────────────

    def conn(self, port: int, proto: str, rows: List[dict]) -> str:
        if self.as_json:
            return self._dump({"port": port, "proto": proto, "rows": rows})

        out = [
            f"Connections for {port}/{proto} (top clients)",
            "REMOTE IP              TOTAL   STATES                      SAMPLES",
            "────────────────────   ─────   ─────────────────────────   ─────────────────────────",
        ]
        for r in rows:
            out.append(
                f"{trunc(r['remote_ip'], 20):<20}   {r['total']:<5}   "
                f"{trunc(format_states(r.get('by_state') or {}), 25):<25}   "
                f"{trunc(', '.join(r.get('samples') or []), 25)}"
            )
        return "\n".join(out) + "\n"

    def top(self, proto: str, rows: List[dict]) -> str:
        if self.as_json:
            return self._dump({"proto": proto, "rows": rows})
        if not rows:
            return "No active connections found.\n"

        out = [
            "TOP PORTS",
            "  PORT   PROTO  CONNS  TOP CLIENTS",
            "  -----  -----  -----  ------------------------------",
        ]
        for r in rows:
            clients = ", ".join(f"{c['ip']}({c['count']})" for c in r.get("clients") or []) or "-"
            out.append(f"  {r['port']:<5}  {r['proto']:<5}  {r['total']:<5}  {clients}")
        return "\n".join(out) + "\n"

    # ── scan ──────────────────────────────────────────────────────────────────

    def scan(self, rows: List[dict]) -> str:
        if self.as_json:
            return self._dump({"rows": rows})

        out = [
            "PORT   STATUS   OWNER                 PID     ADDR                 DOCKER              HINT",
            "────   ──────   ────────────────────  ──────  ───────────────────  ──────────────────  ────",
        ]
        for r in rows:
            hint = f"ERR: {r['error']}" if r.get("error") else r.get("hint", "")
            out.append(
                f"{r['port']:<5}  {r['status']:<7}  {trunc(r.get('owner', ''), 20):<20}  "
                f"{dash(r.get('pid')):<6}  {trunc(r.get('addr', ''), 19):<19}  "
                f"{trunc(r.get('docker', ''), 18):<18}  {trunc(hint, 40)}"
            )
        return "\n".join(out) + "\n"


def _dedupe(items: Iterable[str]) -> List[str]:
    seen, out = set(), []
    for it in items:
        if it and it not in seen:
            seen.add(it)
            out.append(it)
    return out


def format_states(by_state: dict, limit: int = 3) -> str:
    """{'ESTAB': 3, 'TIME_WAIT': 1} → 'ESTAB:3 TIME_WAIT:1' (busiest first)."""
    if not by_state:
        return "-"
    ranked = sorted(by_state.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
    return " ".join(f"{k}:{v}" for k, v in ranked)


_CAUSE_SECTIONS = (
    ("Port & process", {DiagnosticKind.PERMISSION, DiagnosticKind.IN_USE,
                        DiagnosticKind.TIME_WAIT, DiagnosticKind.ZOMBIE,
                        DiagnosticKind.PID_MISSING, DiagnosticKind.MULTI_LISTENER}),
    ("Network & reachability", {DiagnosticKind.IPV6_ONLY, DiagnosticKind.LOOPBACK_ONLY,
                                DiagnosticKind.FIREWALL}),
    ("Environment", {DiagnosticKind.DOCKER, DiagnosticKind.ENV}),
)


def _cause_section(kind: str) -> str:
    for title, kinds in _CAUSE_SECTIONS:
        if kind in {k.value for k in kinds}:
            return title
    return "Other"


def _likely_causes(diags: List[dict]) -> List[str]:
    if not diags:
        return []
    groups: dict = {}
    for d in diags:
        groups.setdefault(_cause_section(d.get("kind", "")), []).append(d)

    lines = ["", "LIKELY CAUSES"]
    for title in [t for t, _ in _CAUSE_SECTIONS] + ["Other"]:
        for i, d in enumerate(groups.get(title, [])):
            if i == 0:
                lines.append(f"  {title}")
            lines.append(f"    • {d.get('summary', '')}")
            if d.get("details"):
                lines.append(f"      {d['details']}")
    return lines
