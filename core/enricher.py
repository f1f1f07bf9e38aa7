"""
core/enricher.py
Process metadata enrichment via ps(1).

Only fills gaps: anything the socket enumerator already set (lsof reports
the user, ss the process name) is kept as is. PID <= 0 is a no-op.
"""

from __future__ import annotations

from typing import Union

from core.model import Connection, Listener
from utils.logger import get_logger
from utils.shell import CommandError, Runner, run_command
from utils.validators import compact_cmdline

log = get_logger("portik.enricher")


def ps_field(pid: int, fmt: str, runner: Runner = run_command) -> str:
    """
    Single `ps -p <pid> -o <fmt>` lookup. Returns "" when the process is
    gone or ps is unavailable.
    """
    try:
        return runner(["ps", "-p", str(pid), "-o", fmt]).strip()
    except CommandError as exc:
        log.debug(f"ps lookup {fmt!r} for pid {pid} failed: {exc}")
        return ""


def _first_non_empty(current: str, fresh: str) -> str:
    return current if current else fresh.strip()


class ProcessEnricher:
    """Attach name / user / cmdline / zombie flag to socket records."""

    def __init__(self, runner: Runner = run_command):
        self._run = runner

    def enrich(self, record: Union[Listener, Connection]) -> None:
        if record.pid <= 0:
            return
        if isinstance(record, Connection):
            record.proc_name = _first_non_empty(record.proc_name, self._ps(record.pid, "comm="))
            return

        record.proc_name = _first_non_empty(record.proc_name, self._ps(record.pid, "comm="))
        record.user = _first_non_empty(record.user, self._ps(record.pid, "user="))
        record.cmdline = _first_non_empty(
            record.cmdline, compact_cmdline(self._ps(record.pid, "command="))
        )
        if not record.is_zombie:
            record.is_zombie = "Z" in self._ps(record.pid, "stat=").upper()

    def _ps(self, pid: int, fmt: str) -> str:
        return ps_field(pid, fmt, self._run)
