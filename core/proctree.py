"""
core/proctree.py
Process ancestry ("blame"): walk pid → ppid and guess who started a process.

Started-by heuristics:
  Linux   1. systemd unit under system.slice in /proc/<pid>/cgroup
          2. 12–64 char hex token in the cgroup (container id)
          3. a ".service" line from `systemctl status <pid>`
  macOS   an ancestor whose name contains "launchd" (up to 15 hops)
  other   unknown

Nothing here raises; failed lookups degrade to empty fields and
StartedBy(kind="unknown").
"""

from __future__ import annotations

import platform
import re
import shutil
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from core.enricher import ps_field
from core.model import Report
from utils.constants import DEFAULT_ANCESTRY_DEPTH, LAUNCHD_SEARCH_DEPTH, StartedByKind
from utils.logger import get_logger
from utils.shell import CommandError, Runner, run_command

log = get_logger("portik.proctree")

_SYSTEMD_UNIT_RE = re.compile(r"system\.slice/(.*?\.service)")
_HEX_TOKEN_RE    = re.compile(r"[0-9a-fA-F]+")


@dataclass
class Proc:
    pid:     int
    ppid:    int = 0
    user:    str = ""
    name:    str = ""
    cmdline: str = ""


@dataclass
class StartedBy:
    kind:    str = StartedByKind.UNKNOWN.value
    details: str = ""

    @property
    def known(self) -> bool:
        return self.kind != StartedByKind.UNKNOWN.value


def _to_int(text: str) -> int:
    m = re.match(r"-?\d+", text.strip())
    return int(m.group(0)) if m else 0


# ─── cgroup / systemctl parsing ───────────────────────────────────────────────

def systemd_unit_from_cgroup(text: str) -> str:
    """'0::/system.slice/nginx.service' → 'nginx.service'."""
    for line in text.splitlines():
        m = _SYSTEMD_UNIT_RE.search(line)
        if m:
            return m.group(1)
    return ""


def container_id_from_cgroup(text: str) -> str:
    """Longest 12–64 character hexadecimal token, or ""."""
    best = ""
    for token in _HEX_TOKEN_RE.findall(text):
        if 12 <= len(token) <= 64 and len(token) > len(best):
            best = token
    return best


def service_line_from_status(text: str) -> str:
    """First line of `systemctl status` output mentioning a .service unit."""
    for line in text.splitlines():
        line = line.strip()
        if ".service" in line:
            return line
    return ""


# ─── Builder ──────────────────────────────────────────────────────────────────

class AncestryBuilder:
    def __init__(
        self,
        runner: Runner = run_command,
        system: Optional[str] = None,
        proc_root: str | Path = "/proc",
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self._run = runner
        self._which = which
        self.system = system if system is not None else platform.system()
        self._proc_root = Path(proc_root)

    def build(self, pid: int, max_depth: int = DEFAULT_ANCESTRY_DEPTH) -> Tuple[List[Proc], StartedBy]:
        if max_depth <= 0:
            max_depth = DEFAULT_ANCESTRY_DEPTH

        chain: List[Proc] = []
        seen: set[int] = set()
        cur = pid
        while len(chain) < max_depth and cur > 0 and cur not in seen:
            seen.add(cur)
            p = self.proc_info(cur)
            chain.append(p)
            if p.ppid <= 0 or p.ppid == cur or p.pid == 1:
                break
            cur = p.ppid

        return chain, self.started_by(pid)

    def proc_info(self, pid: int) -> Proc:
        return Proc(
            pid=pid,
            ppid=_to_int(self._ps(pid, "ppid=")),
            user=self._ps(pid, "user="),
            name=self._ps(pid, "comm="),
            cmdline=self._ps(pid, "command="),
        )

    def started_by(self, pid: int) -> StartedBy:
        if self.system == "Linux":
            cgroup = self._read_cgroup(pid)
            unit = systemd_unit_from_cgroup(cgroup)
            if unit:
                return StartedBy(StartedByKind.SYSTEMD.value, unit)
            cid = container_id_from_cgroup(cgroup)
            if cid:
                return StartedBy(StartedByKind.CONTAINER.value, cid)
            hint = self._systemctl_hint(pid)
            if hint:
                return StartedBy(StartedByKind.SYSTEMD.value, hint)
        elif self.system == "Darwin":
            if self._launchd_ancestor(pid):
                return StartedBy(StartedByKind.LAUNCHD.value, "parent chain includes launchd")
        return StartedBy()

    # ── helpers ───────────────────────────────────────────────────────────────

    def _ps(self, pid: int, fmt: str) -> str:
        return ps_field(pid, fmt, self._run)

    def _read_cgroup(self, pid: int) -> str:
        try:
            return (self._proc_root / str(pid) / "cgroup").read_text(errors="ignore")
        except OSError:
            return ""

    def _systemctl_hint(self, pid: int) -> str:
        if not self._which("systemctl"):
            return ""
        try:
            out = self._run(["systemctl", "status", str(pid), "--no-pager"], ok_codes=(0, 3))
        except CommandError as exc:
            log.debug(f"systemctl status {pid} failed: {exc}")
            return ""
        return service_line_from_status(out)

    def _launchd_ancestor(self, pid: int) -> bool:
        cur = pid
        for _ in range(LAUNCHD_SEARCH_DEPTH):
            if cur <= 0:
                break
            if "launchd" in self._ps(cur, "comm=").lower():
                return True
            ppid = _to_int(self._ps(cur, "ppid="))
            if ppid <= 0 or ppid == cur:
                break
            cur = ppid
        return False

    def blame(self, report: Report, max_depth: int = DEFAULT_ANCESTRY_DEPTH) -> dict:
        """Ancestry of the report's primary listener as a plain dict."""
        out = {"port": report.port, "proto": report.proto,
               "target": None, "chain": [], "started_by": asdict(StartedBy())}
        l = report.primary_listener()
        if l is None or l.pid <= 0:
            return out
        chain, sb = self.build(l.pid, max_depth)
        out["target"] = asdict(l)
        out["chain"] = [asdict(p) for p in chain]
        out["started_by"] = asdict(sb)
        return out
