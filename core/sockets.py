"""
core/sockets.py
Socket enumeration: turn the host's socket-listing tool output into
canonical Listener / Connection records for one port.

Platforms:
  Linux   → ss -H -ltnp|-lunp 'sport = :<port>'   (+ -tanp for connections)
  macOS   → lsof -nP -iTCP:<port> / -iUDP:<port>
  other   → UnsupportedEnumerator, which always raises

An unsupported platform is an error, never an empty result, so callers can
tell "nothing listening" apart from "cannot determine".
"""

from __future__ import annotations

import platform
import re
from typing import List, Optional, Tuple

from core.model import Connection, Listener
from utils.constants import (
    STATE_BOUND, STATE_LISTEN, WILDCARD_ADDRS, AddressFamily, Protocol,
)
from utils.logger import get_logger
from utils.shell import CommandError, Runner, run_command

log = get_logger("portik.sockets")

EnumerationResult = Tuple[List[Listener], List[Connection]]


# ─── Custom Exceptions ────────────────────────────────────────────────────────

class EnumerationError(RuntimeError):
    """The socket-listing command could not be run or failed."""


class UnsupportedPlatformError(EnumerationError):
    """No enumerator exists for this operating system."""


# ─── Address helpers ──────────────────────────────────────────────────────────

def _to_int(text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        return 0


def split_host_port(addr: str) -> Tuple[str, int]:
    """
    Split "127.0.0.1:5432", "[::1]:5432" or "*:5432" into (ip, port).

    A bare wildcard ("*") comes back as "" (unspecified). Interface zone
    suffixes ("127.0.0.53%lo") are dropped.
    """
    addr = addr.strip()

    if addr.startswith("["):
        i = addr.rfind("]:")
        if i > 0:
            return _strip_zone(addr[1:i]), _to_int(addr[i + 2:])
    if addr.startswith("*:"):
        return "", _to_int(addr[2:])

    i = addr.rfind(":")
    if i < 0:
        return _strip_zone(addr), 0
    ip = _strip_zone(addr[:i])
    return ("" if ip == "*" else ip), _to_int(addr[i + 1:])


def _strip_zone(ip: str) -> str:
    return ip.split("%", 1)[0]


def family_from_ip(ip: str) -> str:
    if ":" in ip:
        return AddressFamily.IPV6.value
    if ip in ("", "*"):
        return AddressFamily.UNKNOWN.value
    return AddressFamily.IPV4.value


def is_any_addr(ip: str) -> bool:
    return ip in WILDCARD_ADDRS


def is_loopback_addr(ip: str) -> bool:
    return ip == "::1" or ip.startswith("127.")


# ─── Linux: ss ────────────────────────────────────────────────────────────────

# LISTEN 0 4096 127.0.0.1:5432 0.0.0.0:* users:(("postgres",pid=8123,fd=7))
_SS_RE = re.compile(
    r"^(?P<state>\S+)\s+\d+\s+\d+\s+(?P<laddr>\S+)\s+(?P<raddr>\S+)"
    r"\s*(?P<users>users:\(\(.*\)\))?\s*$"
)
_USERS_PID_RE  = re.compile(r"pid=(\d+)")
_USERS_PROC_RE = re.compile(r'\(\("([^"]+)"')


def parse_ss_users(users: Optional[str]) -> Tuple[int, str]:
    """Extract (pid, process name) from an ss users:((...)) column."""
    if not users:
        return 0, ""
    pid = 0
    name = ""
    m = _USERS_PID_RE.search(users)
    if m:
        pid = int(m.group(1))
    m = _USERS_PROC_RE.search(users)
    if m:
        name = m.group(1)
    return pid, name


def parse_ss_line(line: str):
    """Return (state, laddr, raddr, pid, proc_name) or None for unparseable lines."""
    m = _SS_RE.match(line.strip())
    if not m:
        return None
    pid, name = parse_ss_users(m.group("users"))
    # ss spells states with hyphens (TIME-WAIT)
    state = m.group("state").upper().replace("-", "_")
    return state, m.group("laddr"), m.group("raddr"), pid, name


class LinuxEnumerator:
    """ss(8) based enumerator."""

    name = "ss"

    def __init__(self, runner: Runner = run_command):
        self._run = runner

    def enumerate(self, port: int, proto: str, include_connections: bool = False) -> EnumerationResult:
        flags = "-ltnp" if proto == Protocol.TCP else "-lunp"
        out = self._ss(["ss", "-H", flags, f"sport = :{port}"])

        listeners: List[Listener] = []
        for line in out.splitlines():
            parsed = parse_ss_line(line)
            if parsed is None:
                continue
            state, laddr, _raddr, pid, name = parsed
            if state == "UNCONN":
                state = STATE_BOUND
            ip, p = split_host_port(laddr)
            listeners.append(Listener(
                local_ip=ip, local_port=p, family=family_from_ip(ip),
                state=state, pid=pid, proc_name=name,
            ))

        conns: List[Connection] = []
        if include_connections and proto == Protocol.TCP:
            out = self._ss(["ss", "-H", "-tanp", f"( sport = :{port} or dport = :{port} )"])
            for line in out.splitlines():
                parsed = parse_ss_line(line)
                if parsed is None:
                    continue
                state, laddr, raddr, pid, name = parsed
                if state == STATE_LISTEN:
                    continue
                lip, lp = split_host_port(laddr)
                rip, rp = split_host_port(raddr)
                if port not in (lp, rp):
                    continue
                conns.append(Connection(
                    local_ip=lip, local_port=lp, remote_ip=rip, remote_port=rp,
                    family=family_from_ip(lip), state=state, pid=pid, proc_name=name,
                ))

        return listeners, conns

    def _ss(self, args: List[str]) -> str:
        try:
            return self._run(args)
        except CommandError as exc:
            raise EnumerationError(f"socket listing failed: {exc}") from exc


# ─── macOS: lsof ──────────────────────────────────────────────────────────────

# postgres 8123 me 6u IPv6 0x... 0t0 TCP [::1]:5432 (LISTEN)
# mDNSRespo 301 _mdnsresponder 8u IPv4 0x... 0t0 UDP *:5353
_LSOF_RE = re.compile(
    r"^(?P<cmd>\S+)\s+(?P<pid>\d+)\s+(?P<user>\S+)\s+.*\s(?P<proto>TCP|UDP)\s+"
    r"(?P<addr>\S+)(?:\s+\((?P<state>[^)]+)\))?\s*$"
)


def parse_lsof_conn(addr: str) -> Tuple[str, int, str, int]:
    """Split "local->remote" into (lip, lport, rip, rport)."""
    local, sep, remote = addr.partition("->")
    lip, lp = split_host_port(local)
    if not sep:
        return lip, lp, "", 0
    rip, rp = split_host_port(remote)
    return lip, lp, rip, rp


class DarwinEnumerator:
    """lsof(8) based enumerator."""

    name = "lsof"

    def __init__(self, runner: Runner = run_command):
        self._run = runner

    def enumerate(self, port: int, proto: str, include_connections: bool = False) -> EnumerationResult:
        args = ["lsof", "-nP", f"-i{proto.upper()}:{port}"]
        try:
            # lsof exits 1 when nothing matches
            out = self._run(args, ok_codes=(0, 1))
        except CommandError as exc:
            raise EnumerationError(f"socket listing failed: {exc}") from exc

        listeners: List[Listener] = []
        conns: List[Connection] = []
        for line in out.splitlines():
            line = line.strip()
            if not line or line.startswith("COMMAND"):
                continue
            m = _LSOF_RE.match(line)
            if not m:
                continue
            pid = int(m.group("pid"))
            cmd = m.group("cmd")
            user = m.group("user")
            addr = m.group("addr")
            state = (m.group("state") or "").strip().upper()
            lip, lp, rip, rp = parse_lsof_conn(addr)

            if m.group("proto") == "UDP" and not state and not rip:
                state = STATE_BOUND
            if state in (STATE_LISTEN, STATE_BOUND) and lp == port:
                listeners.append(Listener(
                    local_ip=lip, local_port=lp, family=family_from_ip(lip),
                    state=state, pid=pid, proc_name=cmd, user=user,
                ))
            elif include_connections and proto == Protocol.TCP and port in (lp, rp):
                conns.append(Connection(
                    local_ip=lip, local_port=lp, remote_ip=rip, remote_port=rp,
                    family=family_from_ip(lip), state=state, pid=pid, proc_name=cmd,
                ))
        return listeners, conns


# ─── Fallback ─────────────────────────────────────────────────────────────────

class UnsupportedEnumerator:
    name = "unsupported"

    def __init__(self, system: str):
        self.system = system

    def enumerate(self, port: int, proto: str, include_connections: bool = False) -> EnumerationResult:
        raise UnsupportedPlatformError(
            f"socket inspection is not supported on {self.system or 'this OS'}"
        )


def get_enumerator(system: Optional[str] = None, runner: Runner = run_command):
    """Pick the enumerator for `system` (defaults to platform.system())."""
    system = system if system is not None else platform.system()
    if system == "Linux":
        return LinuxEnumerator(runner)
    if system == "Darwin":
        return DarwinEnumerator(runner)
    log.debug(f"No socket enumerator for {system!r}")
    return UnsupportedEnumerator(system)
