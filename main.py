#!/usr/bin/env python3
"""
portik — who owns this port, and why is it broken?
main.py — CLI entry point

Usage:
  python3 main.py --who 5432
  python3 main.py --who 53 --proto udp --json
  python3 main.py --explain 8080 --docker
  python3 main.py --trace 8080
  python3 main.py --conn 5432 --state established --limit 5
  python3 main.py --top 80,443,5432 --clients 3
  python3 main.py --wait 5432 --timeout 1m
  python3 main.py --scan 3000-3010,5432 --docker
  python3 main.py --watch 8080 --interval 5s
  python3 main.py --daemon 80,443,5432
  python3 main.py --history 5432 --since 24h --detect-patterns
  python3 main.py --blame 8080 --depth 6
  python3 main.py --dashboard
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

# Try uvloop for a faster event loop on Linux/macOS
try:
    import uvloop
    asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
except ImportError:
    pass

from core.connections import aggregate_connections, parse_state_filter, rank_ports
from core.inspector import InspectError, InspectOptions, Inspector
from core.port_parser import PortParseError, parse_ports
from core.proctree import AncestryBuilder
from core.scanner import PortScanner
from core.trace import trace_steps
from core.watch import Watcher, wait_for
from database.history import History, HistoryError
from reporting import ReportRenderer
from utils.config import load_config
from utils.constants import (
    CONN_TOP_DEFAULT, TOP_CLIENTS_DEFAULT, TOP_PORTS_DEFAULT, TRACE_ANCESTRY_DEPTH,
    WAIT_INTERVAL_S,
)
from utils.logger import get_logger, set_level
from utils.validators import parse_duration

log = get_logger()

EXIT_OK, EXIT_RUNTIME, EXIT_USAGE = 0, 1, 2
RECENT_OWNERS_SHOWN = 3


class UsageError(ValueError):
    """Bad command-line input; exits with status 2."""


def _out(text: str) -> None:
    sys.stdout.write(text if text.endswith("\n") else text + "\n")
    sys.stdout.flush()


def _parse_ports(spec: str) -> List[int]:
    try:
        return parse_ports(spec)
    except PortParseError as exc:
        raise UsageError(str(exc)) from exc


def _duration_s(text) -> float:
    if isinstance(text, (int, float)):
        return float(text)
    try:
        return parse_duration(str(text)).total_seconds()
    except ValueError as exc:
        raise UsageError(str(exc)) from exc


def _record(history: History, report) -> None:
    try:
        history.record(report)
    except HistoryError as exc:
        log.warning(f"History not updated: {exc}")


# ─── Commands ────────────────────────────────────────────────────────────────

def cmd_who(args, inspector: Inspector, history: History, renderer: ReportRenderer) -> int:
    opts = InspectOptions(enable_docker=args.docker, include_connections=args.connections)
    report = inspector.inspect(args.who, args.proto, opts)
    _record(history, report)

    recent = []
    try:
        recent = [e.to_dict() for e in
                  history.load().recent_owners(report.port, report.proto, RECENT_OWNERS_SHOWN)]
    except HistoryError as exc:
        log.warning(f"Cannot read history: {exc}")

    _out(renderer.who(report.to_dict(), recent))
    return EXIT_OK


def cmd_explain(args, inspector: Inspector, history: History, renderer: ReportRenderer) -> int:
    opts = InspectOptions(enable_docker=args.docker, include_connections=True)
    report = inspector.inspect(args.explain, args.proto, opts)
    _record(history, report)
    _out(renderer.explain(report.to_dict()))
    return EXIT_OK


def cmd_trace(args, inspector: Inspector, ancestry: AncestryBuilder,
              renderer: ReportRenderer) -> int:
    opts = InspectOptions(enable_docker=args.docker, include_connections=True)
    report = inspector.inspect(args.trace, args.proto, opts)
    chain, started = [], None
    l = report.primary_listener()
    if l is not None and l.pid > 0:
        chain, started = ancestry.build(l.pid, TRACE_ANCESTRY_DEPTH)
    steps = trace_steps(report, chain, started)
    _out(renderer.trace(report.port, report.proto, [asdict(s) for s in steps]))
    return EXIT_OK


def cmd_conn(args, inspector: Inspector, renderer: ReportRenderer) -> int:
    opts = InspectOptions(enable_docker=args.docker, include_connections=True)
    report = inspector.inspect(args.conn, args.proto, opts)
    limit = args.limit if args.limit is not None else CONN_TOP_DEFAULT
    rows = aggregate_connections(report.connections, parse_state_filter(args.state), limit)
    _out(renderer.conn(report.port, report.proto, [asdict(r) for r in rows]))
    return EXIT_OK


def cmd_top(args, inspector: Inspector, renderer: ReportRenderer) -> int:
    if args.proto != "tcp":
        raise UsageError("--top only counts tcp connections")
    ports = _parse_ports(args.top)
    opts = InspectOptions(enable_docker=args.docker, include_connections=True)
    reports = []
    for p in ports:
        try:
            reports.append(inspector.inspect(p, args.proto, opts))
        except Exception as exc:
            log.warning(f"{p}/{args.proto}: {exc}")
    limit = args.limit if args.limit is not None else TOP_PORTS_DEFAULT
    rows = rank_ports(reports, limit, args.clients)
    _out(renderer.top(args.proto, [asdict(r) for r in rows]))
    return EXIT_OK


def cmd_wait(args, inspector: Inspector) -> int:
    timeout = _duration_s(args.timeout)
    interval = _duration_s(args.interval) if args.interval is not None else WAIT_INTERVAL_S
    want = "FREE" if args.free else "LISTENING"
    try:
        ok = wait_for(args.wait, args.proto, want_listening=not args.free,
                      timeout=timeout, interval=interval, inspector=inspector,
                      options=InspectOptions(enable_docker=args.docker))
    except ValueError as exc:
        raise UsageError(str(exc)) from exc
    if ok:
        if not args.quiet:
            _out(f"{args.wait}/{args.proto} is {want}")
        return EXIT_OK
    if not args.quiet:
        log.error(f"timeout waiting for {args.wait}/{args.proto} to be {want}")
    return EXIT_RUNTIME


def cmd_scan(args, inspector: Inspector, renderer: ReportRenderer, concurrency: int) -> int:
    ports = _parse_ports(args.scan)
    log.info(f"Scanning {len(ports)} port(s) over {args.proto}")
    scanner = PortScanner(inspector, progress_cb=lambda msg: log.debug(msg))
    rows = asyncio.run(scanner.scan(ports, args.proto, args.docker, concurrency))
    _out(renderer.scan([asdict(r) for r in rows]))
    return EXIT_RUNTIME if any(r.status == "error" for r in rows) else EXIT_OK


def _watcher(args, ports, interval, inspector, history) -> Watcher:
    try:
        return Watcher(
            ports, args.proto, interval, inspector=inspector, history=history,
            options=InspectOptions(enable_docker=args.docker,
                                   include_connections=args.connections),
        )
    except ValueError as exc:
        raise UsageError(str(exc)) from exc


def cmd_watch(args, inspector, history, renderer, interval: float) -> int:
    w = _watcher(args, [args.watch], interval, inspector, history)
    log.info(f"Watching {args.watch}/{args.proto} every {interval:g}s (Ctrl-C to stop)")
    w.run(lambda rep: _out(renderer.change(rep.to_dict())), iterations=args.iterations)
    return EXIT_OK


def cmd_daemon(args, inspector, history, interval: float) -> int:
    ports = _parse_ports(args.daemon)
    w = _watcher(args, ports, interval, inspector, history)
    log.info(f"Monitoring {len(ports)} port(s) every {interval:g}s (history at {history.path})")

    def _changed(rep):
        l = rep.primary_listener()
        owner = f"{l.proc_name or '?'} pid={l.pid}" if l else "free"
        log.info(f"{rep.key} owner changed: {owner}")

    w.run(_changed, iterations=args.iterations)
    return EXIT_OK


def cmd_history(args, history: History, renderer: ReportRenderer) -> int:
    cutoff = datetime.now().astimezone() - parse_duration(args.since)
    view = history.load().view_port_since(args.history, cutoff, args.detect_patterns)
    _out(renderer.history(args.history, view.to_dict(), args.since))
    return EXIT_OK


def cmd_blame(args, inspector: Inspector, ancestry: AncestryBuilder,
              renderer: ReportRenderer) -> int:
    report = inspector.inspect(args.blame, args.proto)
    data = ancestry.blame(report, args.depth)
    _out(renderer.blame(data))
    return EXIT_OK if data["target"] else EXIT_RUNTIME


def cmd_dashboard(cfg: dict, inspector, history, ancestry) -> int:
    from dashboard.app import run_dashboard
    run_dashboard(cfg.get("dashboard", {}), inspector, history, ancestry)
    return EXIT_OK


# ─── CLI ─────────────────────────────────────────────────────────────────────

def build_cli() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="portik",
        description="portik — port ownership diagnostics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Port specs:   80  |  80,443  |  3000-3010  |  22,3000-3002,5432
Durations:    500ms  10s  30m  24h  7d

Examples:
  %(prog)s --who 5432
  %(prog)s --scan 3000-3010 --json
  %(prog)s --history 5432 --since 24h --detect-patterns
  %(prog)s --blame 8080
""",
    )
    g = ap.add_argument_group
    m = g("Commands").add_mutually_exclusive_group()
    m.add_argument("--who",       metavar="PORT", type=int, help="Show who owns a port and why it may be broken")
    m.add_argument("--explain",   metavar="PORT", type=int, help="who, with connections and grouped likely causes")
    m.add_argument("--trace",     metavar="PORT", type=int, help="Step-by-step explanation of a port's owner")
    m.add_argument("--conn",      metavar="PORT", type=int, help="Connections on a port grouped by client")
    m.add_argument("--top",       metavar="SPEC", help="Busiest ports by connection count")
    m.add_argument("--wait",      metavar="PORT", type=int, help="Block until a port is listening (or --free)")
    m.add_argument("--scan",      metavar="SPEC", help="Inspect many ports at once")
    m.add_argument("--watch",     metavar="PORT", type=int, help="Print a line whenever ownership changes")
    m.add_argument("--daemon",    metavar="SPEC", help="Record ownership history for ports in the background")
    m.add_argument("--history",   metavar="PORT", type=int, help="Show recorded owners of a port")
    m.add_argument("--blame",     metavar="PORT", type=int, help="Show the process tree behind a port's owner")
    m.add_argument("--dashboard", action="store_true", help="Start the JSON dashboard")
    m.add_argument("--hash-password", metavar="PLAIN", help="Print a bcrypt hash for dashboard.auth_password")

    o = g("Inspection")
    o.add_argument("--proto",       choices=["tcp", "udp"], default=None)
    o.add_argument("--docker",      action="store_true", default=None, help="Map the port to a Docker container")
    o.add_argument("--connections", action="store_true", help="Include TCP connections on the port")

    h = g("History")
    h.add_argument("--since",           default="7d", metavar="DUR", help="History window (default: 7d)")
    h.add_argument("--detect-patterns", action="store_true", help="Look for recurring times and owners")

    c = g("Connections")
    c.add_argument("--state",   default=None, metavar="STATES", help="Only these states, e.g. ESTAB,TIME_WAIT")
    c.add_argument("--limit",   type=int, default=None, metavar="N", help="Rows to show (conn: 10, top: 5)")
    c.add_argument("--clients", type=int, default=TOP_CLIENTS_DEFAULT, metavar="N", help="Clients per port for --top (default: 3)")

    wt = g("Wait")
    wt.add_argument("--free",    action="store_true", help="Wait until nothing listens instead")
    wt.add_argument("--timeout", default="30s", metavar="DUR", help="Give up after this long (default: 30s)")
    wt.add_argument("--quiet",   action="store_true", help="Exit status only")

    b = g("Blame")
    b.add_argument("--depth", type=int, default=10, metavar="N", help="Max ancestry hops (default: 10)")

    w = g("Watch / Daemon / Scan")
    w.add_argument("--interval",    default=None, metavar="DUR", help="Poll period (default: 10s; --wait: 500ms)")
    w.add_argument("--iterations",  type=int, default=None, metavar="N", help=argparse.SUPPRESS)
    w.add_argument("--concurrency", type=int, default=None, metavar="N", help="Scan workers (0 = CPU count)")

    ap.add_argument("--json",     action="store_true", help="Machine-readable output")
    ap.add_argument("--config",   default=None, metavar="FILE", help="Config file (default: ~/.portik/config.yaml)")
    ap.add_argument("--verbose",  action="store_true", help="Debug logging")
    ap.add_argument("--version",  action="version", version="portik 1.0.0")
    return ap


def dispatch(args, cfg: dict) -> int:
    if args.hash_password:
        from dashboard.app import hash_password
        _out(hash_password(args.hash_password))
        return EXIT_OK

    if args.proto is None:
        args.proto = str(cfg.get("proto") or "tcp").lower()
    if args.docker is None:
        args.docker = bool(cfg.get("docker"))
    concurrency = args.concurrency if args.concurrency is not None else int(cfg.get("concurrency") or 0)

    inspector = Inspector()
    history = History(cfg.get("history_path"))
    ancestry = AncestryBuilder()
    renderer = ReportRenderer(as_json=args.json)

    if args.who is not None:
        return cmd_who(args, inspector, history, renderer)
    if args.explain is not None:
        return cmd_explain(args, inspector, history, renderer)
    if args.trace is not None:
        return cmd_trace(args, inspector, ancestry, renderer)
    if args.conn is not None:
        return cmd_conn(args, inspector, renderer)
    if args.top:
        return cmd_top(args, inspector, renderer)
    if args.wait is not None:
        return cmd_wait(args, inspector)
    if args.scan:
        return cmd_scan(args, inspector, renderer, concurrency)
    if args.watch is not None or args.daemon:
        # only the polling loops read the configured interval
        interval = _duration_s(args.interval if args.interval is not None
                               else cfg.get("interval", "10s"))
        if args.watch is not None:
            return cmd_watch(args, inspector, history, renderer, interval)
        return cmd_daemon(args, inspector, history, interval)
    if args.history is not None:
        return cmd_history(args, history, renderer)
    if args.blame is not None:
        return cmd_blame(args, inspector, ancestry, renderer)
    if args.dashboard:
        return cmd_dashboard(cfg, inspector, history, ancestry)
    raise UsageError("no command given")


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_cli()
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        ap.print_help()
        return EXIT_OK
    args = ap.parse_args(argv)

    cfg = load_config(args.config)
    set_level("DEBUG" if args.verbose else cfg.get("log_level", "INFO"))

    try:
        return dispatch(args, cfg)
    except KeyboardInterrupt:
        log.info("Interrupted by user")
        return EXIT_OK
    except (UsageError, InspectError, ValueError) as exc:
        log.error(str(exc))
        return EXIT_USAGE
    except Exception as exc:
        log.debug("Fatal error", exc_info=True)
        log.error(f"{exc}")
        return EXIT_RUNTIME


if __name__ == "__main__":
    sys.exit(main())
