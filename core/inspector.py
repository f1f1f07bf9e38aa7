"""
core/inspector.py
Report assembly: enumerator → enricher → (Docker mapper) → diagnostics.

One inspect() call is synchronous and sequential; bounding its latency is
the caller's job. Enumeration failures propagate and no partial report is
returned.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.diagnose import diagnose
from core.docker_map import DockerMapper
from core.enricher import ProcessEnricher
from core.host import HostEnvironment
from core.model import Report
from core.sockets import get_enumerator
from utils.constants import Protocol
from utils.logger import get_logger
from utils.validators import validate_port, validate_proto

log = get_logger("portik.inspect")


class InspectError(ValueError):
    """Invalid inspection request (bad port or protocol)."""


@dataclass
class InspectOptions:
    enable_docker:       bool = False
    include_connections: bool = False


class Inspector:
    """
    Orchestrates one port inspection.

    All collaborators are injectable; the defaults talk to the live host.
    """

    def __init__(
        self,
        enumerator=None,
        enricher: Optional[ProcessEnricher] = None,
        docker: Optional[DockerMapper] = None,
        env: Optional[HostEnvironment] = None,
    ):
        self.enumerator = enumerator or get_enumerator()
        self.enricher = enricher or ProcessEnricher()
        self.docker = docker or DockerMapper()
        self.env = env or HostEnvironment()

    def inspect(self, port: int, proto: str = "tcp",
                options: Optional[InspectOptions] = None) -> Report:
        opts = options or InspectOptions()
        ok, err = validate_port(port)
        if not ok:
            raise InspectError(err)
        ok, err = validate_proto(proto)
        if not ok:
            raise InspectError(err)
        proto = Protocol(proto).value

        report = Report(
            port=port,
            proto=proto,
            generated=datetime.now().astimezone(),
            host=self.env.summary(),
        )

        listeners, conns = self.enumerator.enumerate(port, proto, opts.include_connections)
        for l in listeners:
            self.enricher.enrich(l)
        for c in conns:
            self.enricher.enrich(c)
        report.listeners = listeners
        report.connections = conns
        log.debug(f"{report.key}: {len(listeners)} listener(s), {len(conns)} connection(s)")

        if opts.enable_docker:
            report.docker = self.docker.map_port(port, proto)

        report.diagnostics = diagnose(report, self.env)
        return report

    def check(self, port: int, proto: str = "tcp",
              docker: bool = False, connections: bool = False) -> Report:
        """inspect() with plain flags, for callers that do not import core."""
        return self.inspect(port, proto, InspectOptions(enable_docker=docker,
                                                        include_connections=connections))


# ── Module-level convenience ──────────────────────────────────────────────────

def inspect_port(port: int, proto: str = "tcp",
                 options: Optional[InspectOptions] = None) -> Report:
    return Inspector().inspect(port, proto, options)
