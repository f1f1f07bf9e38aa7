"""
core/host.py
Host environment checks used by the inspector and the diagnostic rules.

Every check is best-effort: unreadable files or missing tools simply mean
"not detected". HostEnvironment bundles them so tests can swap in a fake.
"""

from __future__ import annotations

import getpass
import os
import platform
import shutil
import socket
from dataclasses import dataclass
from pathlib import Path

from core.model import HostSummary
from utils.logger import get_logger
from utils.shell import CommandError, Runner, run_command

log = get_logger("portik.host")

_MACOS_FIREWALL = "/usr/libexec/ApplicationFirewall/socketfilterfw"
_CONTAINER_MARKERS = ("docker", "kubepods", "containerd")


@dataclass
class FirewallStatus:
    active: bool = False
    name:   str = ""


def _read_text(path: str) -> str:
    try:
        return Path(path).read_text(errors="ignore")
    except OSError:
        return ""


class HostEnvironment:
    """Live checks against the machine portik runs on."""

    def __init__(self, runner: Runner = run_command, system: str | None = None):
        self._run = runner
        self.system = system if system is not None else platform.system()

    # ── Identity ──────────────────────────────────────────────────────────────

    def username(self) -> str:
        try:
            return getpass.getuser()
        except (KeyError, OSError):
            return ""

    def is_root(self) -> bool:
        geteuid = getattr(os, "geteuid", None)
        return geteuid is not None and geteuid() == 0

    def summary(self) -> HostSummary:
        kernel = ""
        try:
            kernel = self._run(["uname", "-r"]).strip()
        except CommandError:
            pass
        return HostSummary(
            os=self.system.lower(),
            arch=platform.machine(),
            hostname=socket.gethostname(),
            kernel=kernel,
            username=self.username(),
        )

    # ── Firewall ──────────────────────────────────────────────────────────────

    def firewall_status(self) -> FirewallStatus:
        if self.system == "Linux":
            if shutil.which("ufw") and "status: active" in self._quiet(["ufw", "status"]).lower():
                return FirewallStatus(True, "ufw")
            if shutil.which("firewall-cmd") and self._quiet(["firewall-cmd", "--state"]).strip() == "running":
                return FirewallStatus(True, "firewalld")
        elif self.system == "Darwin":
            if "enabled" in self._quiet([_MACOS_FIREWALL, "--getglobalstate"]).lower():
                return FirewallStatus(True, "macOS Application Firewall")
        return FirewallStatus()

    def _quiet(self, args: list[str]) -> str:
        try:
            return self._run(args)
        except CommandError as exc:
            log.debug(f"firewall check failed: {exc}")
            return ""

    # ── Virtualization ────────────────────────────────────────────────────────

    def in_container(self) -> bool:
        txt = _read_text("/proc/1/cgroup")
        if any(marker in txt for marker in _CONTAINER_MARKERS):
            return True
        return bool(os.environ.get("container"))

    def in_wsl(self) -> bool:
        return "microsoft" in _read_text("/proc/sys/kernel/osrelease").lower()

    def in_vm(self) -> bool:
        return "hypervisor" in _read_text("/proc/cpuinfo").lower()
