"""
tests/test_reporting.py
Unit tests for reporting/renderer.py — text layout and JSON output.
Run: pytest tests/test_reporting.py -v
"""

import sys
import os
import json
from dataclasses import asdict
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from core.model import Diagnostic, DockerMapping, Listener, Report
from core.scanner import ScanRow
from reporting import ReportRenderer, event_label
from reporting.renderer import format_states
from tests.fakes import utc


@pytest.fixture
def report():
    return Report(
        port=5432, proto="tcp", generated=utc(2024, 1, 1, 9),
        listeners=[Listener("::1", 5432, family="ipv6", state="LISTEN", pid=7,
                            proc_name="postgres", user="pg", cmdline="postgres -D /data")],
        docker=DockerMapping(checked=True),
        diagnostics=[Diagnostic("in-use", "info", "Port is in use", "pid 7", "Stop it."),
                     Diagnostic("loopback-only", "info", "Service is bound to loopback only",
                                "", "Stop it.")],
    ).to_dict()


class TestWho:
    def test_text(self, report):
        out = ReportRenderer().who(report)
        assert out.startswith("PORT 5432/tcp")
        assert "[::1]:5432" in out
        assert "postgres -D /data" in out
        assert "DOCKER not mapped" in out
        assert "[INFO] Port is in use" in out
        # actions deduplicated
        assert out.count("  - Stop it.") == 1

    def test_no_listeners(self):
        rep = Report(port=9, proto="udp", generated=utc(2024, 1, 1)).to_dict()
        out = ReportRenderer().who(rep)
        assert "(no listeners)" in out
        assert "No hints available" in out
        assert "DOCKER" not in out

    def test_recent_owners(self, report):
        recent = [{"at": "2024-01-01T08:00:00+00:00", "proc_name": "redis", "user": "r", "pid": 3}]
        out = ReportRenderer().who(report, recent)
        assert "RECENT OWNERS" in out and "redis (r)" in out

    def test_json(self, report):
        data = json.loads(ReportRenderer(as_json=True).who(report))
        assert data["port"] == 5432
        assert data["signature"] == report["signature"]
        assert "recent_owners" not in data


class TestExplain:
    def test_likely_causes_grouped(self, report):
        out = ReportRenderer().explain(report)
        assert "LIKELY CAUSES" in out
        causes = out.split("LIKELY CAUSES", 1)[1]
        assert causes.index("Port & process") < causes.index("Network & reachability")
        assert "    • Service is bound to loopback only" in causes
        assert out.index("SUMMARY") < out.index("LIKELY CAUSES") < out.index("NEXT ACTIONS")

    def test_who_has_no_causes(self, report):
        assert "LIKELY CAUSES" not in ReportRenderer().who(report)

    def test_unknown_kind_goes_to_other(self):
        rep = Report(port=1, proto="tcp", generated=utc(2024, 1, 1),
                     diagnostics=[Diagnostic("mystery", "warn", "Odd")]).to_dict()
        out = ReportRenderer().explain(rep)
        assert "  Other\n    • Odd" in out


class TestTrace:
    STEPS = [{"kind": "listener", "summary": "Listener pid=7 postgres (pg)",
              "details": "Address ::1:5432 LISTEN"},
             {"kind": "loopback", "summary": "Listener is bound to loopback only", "details": ""}]

    def test_text(self):
        out = ReportRenderer().trace(5432, "tcp", self.STEPS)
        assert out.splitlines() == [
            "TRACE 5432/tcp",
            "  - Listener pid=7 postgres (pg)",
            "    Address ::1:5432 LISTEN",
            "  - Listener is bound to loopback only",
        ]

    def test_empty(self):
        assert "(no trace data)" in ReportRenderer().trace(1, "udp", [])

    def test_json(self):
        data = json.loads(ReportRenderer(as_json=True).trace(5432, "tcp", self.STEPS))
        assert data["steps"][0]["kind"] == "listener"


class TestConnections:
    ROWS = [{"remote_ip": "10.0.0.7", "total": 4,
             "by_state": {"ESTAB": 3, "TIME_WAIT": 1},
             "samples": ["10.0.0.7:41000"]}]

    def test_conn_table(self):
        lines = ReportRenderer().conn(5432, "tcp", self.ROWS).splitlines()
        assert lines[0] == "Connections for 5432/tcp (top clients)"
        assert lines[3].startswith("10.0.0.7 ")
        assert "ESTAB:3 TIME_WAIT:1" in lines[3]
        assert lines[3].endswith("10.0.0.7:41000")

    def test_conn_json(self):
        data = json.loads(ReportRenderer(as_json=True).conn(5432, "tcp", self.ROWS))
        assert data["rows"][0]["total"] == 4

    def test_format_states(self):
        assert format_states({}) == "-"
        assert format_states({"A": 1, "B": 5, "C": 1, "D": 2}) == "B:5 D:2 A:1"

    def test_top_table(self):
        rows = [{"port": 5432, "proto": "tcp", "total": 6,
                 "clients": [{"ip": "10.0.0.7", "count": 4}, {"ip": "10.0.0.9", "count": 2}]}]
        out = ReportRenderer().top("tcp", rows)
        assert out.startswith("TOP PORTS")
        assert "10.0.0.7(4), 10.0.0.9(2)" in out

    def test_top_empty(self):
        assert ReportRenderer().top("tcp", []) == "No active connections found.\n"


class TestEventLabel:
    def test_labels(self):
        assert event_label({"docker_mapped": True, "container_name": "db"}) == "docker:db"
        assert event_label({"docker_mapped": True, "container_name": "db",
                            "compose_service": "pg"}) == "docker:db (service=pg)"
        assert event_label({"proc_name": "nginx", "user": "www"}) == "nginx (www)"
        assert event_label({"proc_name": "nginx"}) == "nginx"
        assert event_label({"pid": 4}) == "pid:4"
        assert event_label({}) == "none"


class TestHistory:
    VIEW = {
        "key": "5432/tcp",
        "events": [{"at": "2024-01-01T09:00:00+00:00", "port": 5432, "proto": "tcp",
                    "signature": "x", "proc_name": "postgres"}],
        "top": [{"label": "postgres", "count": 1}],
        "patterns": [],
    }

    def test_text(self):
        out = ReportRenderer().history(5432, self.VIEW, "7d")
        assert out.startswith("HISTORY 5432/tcp (since 7d)")
        assert "TOP OWNERS" in out
        assert "(none detected)" in out

    def test_empty(self):
        out = ReportRenderer().history(5432, {"key": "", "events": [], "top": []}, "24h")
        assert "(no events in window)" in out

    def test_json(self):
        data = json.loads(ReportRenderer(as_json=True).history(5432, self.VIEW, "7d"))
        assert data["since"] == "7d" and data["key"] == "5432/tcp"


class TestBlame:
    def test_text(self):
        data = {"port": 80, "proto": "tcp",
                "target": {"pid": 300, "proc_name": "nginx"},
                "chain": [{"pid": 300, "name": "nginx", "user": "www", "cmdline": "nginx"},
                          {"pid": 1, "name": "systemd", "user": "root", "cmdline": "/sbin/init"}],
                "started_by": {"kind": "systemd", "details": "nginx.service"}}
        out = ReportRenderer().blame(data)
        assert "ANCESTRY" in out
        assert "    1 systemd (root)" in out
        assert "STARTED BY systemd — nginx.service" in out

    def test_no_target(self):
        out = ReportRenderer().blame({"port": 80, "proto": "tcp", "target": None})
        assert "(no listener to blame)" in out


class TestScan:
    def test_table(self):
        rows = [asdict(ScanRow(80, "tcp", "in-use", owner="nginx", pid=5, addr="*:80")),
                asdict(ScanRow(81, "tcp", "error", error="ss failed"))]
        out = ReportRenderer().scan(rows)
        lines = out.splitlines()
        assert lines[0].startswith("PORT")
        assert lines[2].startswith("80 ")
        assert "ERR: ss failed" in lines[3]

    def test_json(self):
        rows = [asdict(ScanRow(80, "tcp", "free"))]
        assert json.loads(ReportRenderer(as_json=True).scan(rows))["rows"][0]["status"] == "free"


class TestChange:
    def test_line(self, report):
        out = ReportRenderer().change(report)
        assert "5432/tcp" in out and "postgres pid=7" in out

    def test_free(self):
        rep = Report(port=9, proto="tcp", generated=utc(2024, 1, 1)).to_dict()
        assert "free" in ReportRenderer().change(rep)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
