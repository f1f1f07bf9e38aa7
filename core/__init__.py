"""
portik Core — Public API

from core import Inspector, InspectOptions, inspect_port, diagnose
"""
from core.model       import (Report, Listener, Connection, DockerMapping,
                              Diagnostic, HostSummary, dedupe_diagnostics)
from core.sockets     import (get_enumerator, EnumerationError,
                              UnsupportedPlatformError)
from core.enricher    import ProcessEnricher
from core.host        import HostEnvironment, FirewallStatus
from core.diagnose    import diagnose, RULES
from core.docker_map  import DockerMapper
from core.inspector   import Inspector, InspectOptions, InspectError, inspect_port
from core.proctree    import AncestryBuilder, Proc, StartedBy
from core.port_parser import parse_port, parse_ports, PortParseError
from core.scanner     import PortScanner, ScanRow
from core.watch       import Watcher, wait_for, is_listening, is_free
from core.connections import (aggregate_connections, top_clients, rank_ports,
                              parse_state_filter, ClientStats, ClientCount,
                              PortTraffic)
from core.trace       import trace_steps, TraceStep

__all__ = [
    "Report", "Listener", "Connection", "DockerMapping", "Diagnostic",
    "HostSummary", "dedupe_diagnostics",
    "get_enumerator", "EnumerationError", "UnsupportedPlatformError",
    "ProcessEnricher", "HostEnvironment", "FirewallStatus",
    "diagnose", "RULES", "DockerMapper",
    "Inspector", "InspectOptions", "InspectError", "inspect_port",
    "AncestryBuilder", "Proc", "StartedBy",
    "parse_port", "parse_ports", "PortParseError",
    "PortScanner", "ScanRow", "Watcher", "wait_for", "is_listening", "is_free",
    "aggregate_connections", "top_clients", "rank_ports", "parse_state_filter",
    "ClientStats", "ClientCount", "PortTraffic", "trace_steps", "TraceStep",
]
