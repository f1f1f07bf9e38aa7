"""
core/watch.py
Polling loops: watch / daemon mode, and waiting for a port to open or close.

Each tick is sequential: inspect → record → compare signature → emit.
Only one poll is ever in flight. The history handle is passed in by the
caller (anything with a record(report) method), which keeps core free of
storage imports.

wait_for() polls a single port until it opens or closes, or until the
timeout passes.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Sequence

from core.inspector import InspectOptions, Inspector
from core.model import Report
from utils.constants import (
    MIN_POLL_INTERVAL_S, STATE_BOUND, STATE_LISTEN, WAIT_INTERVAL_S, WAIT_TIMEOUT_S,
)
from utils.logger import get_logger

log = get_logger("portik.watch")


class Watcher:
    def __init__(
        self,
        ports: Sequence[int],
        proto: str = "tcp",
        interval: float = 10.0,
        inspector: Optional[Inspector] = None,
        history=None,
        options: Optional[InspectOptions] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        if interval < MIN_POLL_INTERVAL_S:
            raise ValueError(f"interval must be at least {MIN_POLL_INTERVAL_S:g}s")
        self.ports = list(ports)
        self.proto = proto
        self.interval = interval
        self._inspector = inspector or Inspector()
        self._history = history
        self._options = options or InspectOptions()
        self._sleep = sleep or time.sleep
        self._last: Dict[int, str] = {}

    def tick(self, on_change: Callable[[Report], None]) -> int:
        """Poll every port once. Returns how many changed."""
        changed = 0
        for port in self.ports:
            try:
                report = self._inspector.inspect(port, self.proto, self._options)
            except Exception as exc:
                log.error(f"{port}/{self.proto}: {exc}")
                continue

            if self._history is not None:
                try:
                    self._history.record(report)
                except Exception as exc:
                    log.warning(f"Could not record history for {report.key}: {exc}")

            sig = report.signature()
            if self._last.get(port) != sig:
                self._last[port] = sig
                changed += 1
                on_change(report)
        return changed

    def run(self, on_change: Callable[[Report], None], iterations: Optional[int] = None) -> None:
        """Tick until interrupted (or `iterations` ticks when given)."""
        done = 0
        while iterations is None or done < iterations:
            self.tick(on_change)
            done += 1
            if iterations is not None and done >= iterations:
                break
            self._sleep(self.interval)


# ─── Wait ─────────────────────────────────────────────────────────────────────

_OPEN_STATES = (STATE_LISTEN, STATE_BOUND)


def is_listening(report: Report) -> bool:
    """Primary listener has a known owner and is accepting (LISTEN, or BOUND for udp)."""
    l = report.primary_listener()
    if l is None or l.pid <= 0:
        return False
    return l.state.strip().upper() in _OPEN_STATES


def is_free(report: Report) -> bool:
    return not any(l.state.strip().upper() in _OPEN_STATES for l in report.listeners)


def wait_for(
    port: int,
    proto: str = "tcp",
    want_listening: bool = True,
    timeout: float = WAIT_TIMEOUT_S,
    interval: float = WAIT_INTERVAL_S,
    inspector: Optional[Inspector] = None,
    options: Optional[InspectOptions] = None,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Optional[Callable[[], float]] = None,
) -> bool:
    """
    Poll until the port is listening (or free). True on success, False once
    `timeout` seconds pass. Failed inspections count as "not yet".
    """
    if timeout <= 0:
        raise ValueError("timeout must be positive")
    if interval <= 0:
        raise ValueError("interval must be positive")

    inspector = inspector or Inspector()
    options = options or InspectOptions()
    sleep = sleep or time.sleep
    clock = clock or time.monotonic
    check = is_listening if want_listening else is_free

    deadline = clock() + timeout
    while True:
        try:
            if check(inspector.inspect(port, proto, options)):
                return True
        except Exception as exc:
            log.debug(f"{port}/{proto}: {exc}")
        if clock() > deadline:
            return False
        sleep(interval)
