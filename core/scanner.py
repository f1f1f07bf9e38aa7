"""
core/scanner.py
Batch port scan: one independent inspection per port across a bounded
worker pool.

  • asyncio.Queue shared by N workers (N = CPU count, capped at 32)
  • each blocking inspect() runs in a worker thread (asyncio.to_thread)
  • a failure on one port becomes an "error" row, never aborts the batch
  • rows are re-sorted by port regardless of completion order
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from core.inspector import InspectOptions, Inspector
from core.model import Diagnostic, Listener, Report
from utils.constants import SCAN_MAX_CONCURRENCY, STATE_LISTEN, Severity
from utils.logger import get_logger

log = get_logger("portik.scanner")


# ─── Data Classes ─────────────────────────────────────────────────────────────

@dataclass
class ScanRow:
    port:      int
    proto:     str
    status:    str                  # free|in-use|unknown|error
    owner:     str = ""
    pid:       int = 0
    addr:      str = ""
    docker:    str = ""
    hint:      str = ""
    error:     str = ""
    signature: str = ""


# ─── Row helpers ──────────────────────────────────────────────────────────────

def owner_short(l: Listener) -> str:
    if not l.proc_name and l.pid > 0:
        return f"pid:{l.pid}"
    if l.user:
        return f"{l.proc_name} ({l.user})"
    return l.proc_name


def addr_short(ip: str, port: int) -> str:
    if not ip.strip():
        return f"*:{port}"
    if ":" in ip and not ip.startswith("["):
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


def scan_hint(diags: Sequence[Diagnostic]) -> str:
    """First warn/error summary, else first info summary."""
    for d in diags:
        if d.severity in (Severity.WARN, Severity.ERROR):
            return d.summary
    for d in diags:
        if d.severity == Severity.INFO:
            return d.summary
    return ""


def report_to_row(report: Report) -> ScanRow:
    row = ScanRow(port=report.port, proto=report.proto, status="free",
                  signature=report.signature())

    l = report.primary_listener()
    if l is not None and l.pid > 0 and l.state.upper() == STATE_LISTEN:
        row.status = "in-use"
        row.pid = l.pid
        row.owner = owner_short(l)
        row.addr = addr_short(l.local_ip, l.local_port)
    elif report.listeners:
        row.status = "unknown"

    d = report.docker
    if d.mapped:
        row.docker = d.container_name
        if d.compose_service:
            row.docker += f" (svc={d.compose_service})"

    row.hint = scan_hint(report.diagnostics)
    return row


# ─── Scanner ──────────────────────────────────────────────────────────────────

class PortScanner:
    """
    Fan out Inspector.inspect() over many ports.

    Layering contract:
      Imports only: core.inspector, core.model, utils
    """

    def __init__(
        self,
        inspector: Optional[Inspector] = None,
        progress_cb: Optional[Callable[[str], None]] = None,
    ):
        self._inspector = inspector or Inspector()
        self._cb = progress_cb or (lambda _: None)

    async def scan(
        self,
        ports: Sequence[int],
        proto: str = "tcp",
        docker: bool = False,
        concurrency: int = 0,
    ) -> List[ScanRow]:
        workers = self._worker_count(concurrency, len(ports))
        opts = InspectOptions(enable_docker=docker, include_connections=False)

        queue: asyncio.Queue[int] = asyncio.Queue()
        for p in ports:
            queue.put_nowait(p)

        rows: List[ScanRow] = []
        lock = asyncio.Lock()

        async def _worker() -> None:
            while True:
                try:
                    port = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                row = await self._scan_one(port, proto, opts)
                async with lock:
                    rows.append(row)
                self._cb(f"[{row.status}] {port}/{proto}")

        await asyncio.gather(*(_worker() for _ in range(workers)))
        rows.sort(key=lambda r: r.port)
        return rows

    async def _scan_one(self, port: int, proto: str, opts: InspectOptions) -> ScanRow:
        try:
            report = await asyncio.to_thread(self._inspector.inspect, port, proto, opts)
        except Exception as exc:
            log.debug(f"{port}/{proto} failed: {exc}")
            return ScanRow(port=port, proto=proto, status="error", error=str(exc))
        return report_to_row(report)

    @staticmethod
    def _worker_count(requested: int, n_ports: int) -> int:
        n = requested if requested > 0 else (os.cpu_count() or 1)
        n = min(n, SCAN_MAX_CONCURRENCY)
        return max(1, min(n, n_ports)) if n_ports else 1
