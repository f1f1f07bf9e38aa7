"""
core/docker_map.py
Optional Docker enrichment: which running container publishes a host port.

Never raises. A missing docker binary or any failing docker command leaves
the mapping at checked=True, mapped=False.
"""

from __future__ import annotations

import shutil
from typing import Callable, Optional, Tuple

from core.model import DockerMapping
from utils.logger import get_logger
from utils.shell import CommandError, Runner, run_command

log = get_logger("portik.docker")

_COMPOSE_LABEL = '{{ index .Config.Labels "com.docker.compose.service" }}'


def parse_docker_port_output(text: str, host_port: int, proto: str) -> Tuple[bool, str]:
    """
    Scan `docker port <id>` output for a mapping onto host_port/proto.

      5432/tcp -> 0.0.0.0:5432
      5432/tcp -> [::]:5432

    Returns (mapped, container_port_spec).
    """
    for line in text.splitlines():
        left, sep, right = line.strip().partition("->")
        if not sep:
            continue
        left, right = left.strip(), right.strip()
        if not left.endswith(f"/{proto}"):
            continue
        if right.endswith(f":{host_port}"):
            return True, left
    return False, ""


class DockerMapper:
    def __init__(self, runner: Runner = run_command,
                 which: Callable[[str], Optional[str]] = shutil.which):
        self._run = runner
        self._which = which

    def map_port(self, port: int, proto: str) -> DockerMapping:
        mapping = DockerMapping(checked=True)
        if not self._which("docker"):
            log.debug("docker not on PATH; skipping container mapping")
            return mapping

        try:
            listing = self._run(["docker", "ps", "--format", "{{.ID}} {{.Names}}"])
        except CommandError as exc:
            log.debug(f"docker ps failed: {exc}")
            return mapping

        for line in listing.splitlines():
            cid, _, name = line.strip().partition(" ")
            if not cid or not name:
                continue
            try:
                ports_out = self._run(["docker", "port", cid])
            except CommandError as exc:
                log.debug(f"docker port {cid} failed: {exc}")
                continue
            mapped, cport = parse_docker_port_output(ports_out, port, proto)
            if mapped:
                mapping.mapped = True
                mapping.container_id = cid
                mapping.container_name = name.strip()
                mapping.container_port = cport
                mapping.compose_service = self._compose_service(cid)
                return mapping
        return mapping

    def _compose_service(self, cid: str) -> str:
        try:
            return self._run(["docker", "inspect", "-f", _COMPOSE_LABEL, cid]).strip()
        except CommandError:
            return ""
