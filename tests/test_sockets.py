"""
tests/test_sockets.py
Unit tests for core/sockets.py — ss / lsof parsing and platform selection.
Run: pytest tests/test_sockets.py -v
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from core.sockets import (
    DarwinEnumerator, EnumerationError, LinuxEnumerator, UnsupportedEnumerator,
    UnsupportedPlatformError, family_from_ip, get_enumerator, is_loopback_addr,
    parse_ss_line, split_host_port,
)
from tests.fakes import FakeRunner
from utils.shell import CommandError


SS_TCP = (
    'LISTEN 0      4096       127.0.0.1:5432      0.0.0.0:*    users:(("postgres",pid=8123,fd=7))\n'
    'LISTEN 0      4096           [::1]:5432         [::]:*    users:(("postgres",pid=8123,fd=6))\n'
)

SS_CONNS = (
    'LISTEN     0 4096 127.0.0.1:5432  0.0.0.0:*        users:(("postgres",pid=8123,fd=7))\n'
    'ESTAB      0 0    127.0.0.1:5432  127.0.0.1:51234  users:(("postgres",pid=9001,fd=11))\n'
    'TIME-WAIT  0 0    127.0.0.1:5432  127.0.0.1:51200\n'
    'ESTAB      0 0    127.0.0.1:40000 127.0.0.1:6000\n'
)

LSOF_TCP = (
    "COMMAND   PID USER   FD   TYPE             DEVICE SIZE/OFF NODE NAME\n"
    "postgres 8123 alice    6u  IPv6 0x1111111111111111      0t0  TCP [::1]:5432 (LISTEN)\n"
    "postgres 8123 alice    7u  IPv4 0x2222222222222222      0t0  TCP 127.0.0.1:5432 (LISTEN)\n"
    "psql     9100 alice    3u  IPv4 0x3333333333333333      0t0  TCP 127.0.0.1:51234->127.0.0.1:5432 (ESTABLISHED)\n"
)

LSOF_UDP = (
    "COMMAND     PID           USER   FD   TYPE             DEVICE SIZE/OFF NODE NAME\n"
    "mDNSRespo   301 _mdnsresponder    8u  IPv4 0x4444444444444444      0t0  UDP *:5353\n"
)


# ── Address helpers ───────────────────────────────────────────────────────────

class TestSplitHostPort:
    def test_ipv4(self):            assert split_host_port("127.0.0.1:5432") == ("127.0.0.1", 5432)
    def test_ipv6_brackets(self):   assert split_host_port("[::1]:5432") == ("::1", 5432)
    def test_wildcard(self):        assert split_host_port("*:53") == ("", 53)
    def test_zone_stripped(self):   assert split_host_port("127.0.0.53%lo:53") == ("127.0.0.53", 53)
    def test_star_port(self):       assert split_host_port("0.0.0.0:*") == ("0.0.0.0", 0)
    def test_ipv6_any(self):        assert split_host_port("[::]:80") == ("::", 80)


class TestAddressClassification:
    def test_families(self):
        assert family_from_ip("127.0.0.1") == "ipv4"
        assert family_from_ip("::1") == "ipv6"
        assert family_from_ip("") == "unknown"

    def test_loopback(self):
        assert is_loopback_addr("127.0.0.1")
        assert is_loopback_addr("127.1.2.3")
        assert is_loopback_addr("::1")
        assert not is_loopback_addr("0.0.0.0")
        assert not is_loopback_addr("10.0.0.1")


# ── ss ────────────────────────────────────────────────────────────────────────

class TestParseSSLine:
    def test_listen_with_users(self):
        state, laddr, raddr, pid, name = parse_ss_line(SS_TCP.splitlines()[0])
        assert (state, laddr, raddr, pid, name) == ("LISTEN", "127.0.0.1:5432", "0.0.0.0:*", 8123, "postgres")

    def test_no_users_column(self):
        state, _, _, pid, name = parse_ss_line("TIME-WAIT 0 0 127.0.0.1:5432 127.0.0.1:51200")
        assert state == "TIME_WAIT"
        assert pid == 0 and name == ""

    def test_garbage(self):
        assert parse_ss_line("State Recv-Q Send-Q") is None


class TestLinuxEnumerator:
    def test_tcp_listeners(self):
        runner = FakeRunner({("ss", "-H", "-ltnp", "sport = :5432"): SS_TCP})
        listeners, conns = LinuxEnumerator(runner).enumerate(5432, "tcp")
        assert conns == []
        assert [(l.local_ip, l.family, l.pid, l.proc_name, l.state) for l in listeners] == [
            ("127.0.0.1", "ipv4", 8123, "postgres", "LISTEN"),
            ("::1", "ipv6", 8123, "postgres", "LISTEN"),
        ]

    def test_udp_unconn_is_bound(self):
        out = 'UNCONN 0 0 0.0.0.0:53 0.0.0.0:* users:(("dnsmasq",pid=700,fd=4))\n'
        runner = FakeRunner({("ss", "-H", "-lunp", "sport = :53"): out})
        listeners, _ = LinuxEnumerator(runner).enumerate(53, "udp")
        assert listeners[0].state == "BOUND"
        assert listeners[0].proc_name == "dnsmasq"

    def test_nothing_listening(self):
        runner = FakeRunner({("ss", "-H", "-ltnp", "sport = :9"): ""})
        assert LinuxEnumerator(runner).enumerate(9, "tcp") == ([], [])

    def test_connections_skip_listen_and_other_ports(self):
        runner = FakeRunner({
            ("ss", "-H", "-ltnp", "sport = :5432"): SS_TCP,
            ("ss", "-H", "-tanp", "( sport = :5432 or dport = :5432 )"): SS_CONNS,
        })
        _, conns = LinuxEnumerator(runner).enumerate(5432, "tcp", include_connections=True)
        assert [(c.state, c.remote_port, c.pid) for c in conns] == [
            ("ESTAB", 51234, 9001),
            ("TIME_WAIT", 51200, 0),
        ]

    def test_connections_not_fetched_for_udp(self):
        runner = FakeRunner({("ss", "-H", "-lunp", "sport = :53"): ""})
        LinuxEnumerator(runner).enumerate(53, "udp", include_connections=True)
        assert len(runner.calls) == 1

    def test_command_failure_raises(self):
        runner = FakeRunner({("ss", "-H", "-ltnp", "sport = :80"): CommandError(["ss"], "boom", 1)})
        with pytest.raises(EnumerationError):
            LinuxEnumerator(runner).enumerate(80, "tcp")


# ── lsof ──────────────────────────────────────────────────────────────────────

class TestDarwinEnumerator:
    def test_tcp(self):
        runner = FakeRunner({("lsof", "-nP", "-iTCP:5432"): LSOF_TCP})
        listeners, conns = DarwinEnumerator(runner).enumerate(5432, "tcp", include_connections=True)
        assert [(l.local_ip, l.user, l.pid) for l in listeners] == [
            ("::1", "alice", 8123), ("127.0.0.1", "alice", 8123),
        ]
        assert len(conns) == 1
        c = conns[0]
        assert (c.local_port, c.remote_port, c.state, c.proc_name) == (51234, 5432, "ESTABLISHED", "psql")

    def test_connections_omitted_by_default(self):
        runner = FakeRunner({("lsof", "-nP", "-iTCP:5432"): LSOF_TCP})
        _, conns = DarwinEnumerator(runner).enumerate(5432, "tcp")
        assert conns == []

    def test_udp_without_state_is_bound(self):
        runner = FakeRunner({("lsof", "-nP", "-iUDP:5353"): LSOF_UDP})
        listeners, _ = DarwinEnumerator(runner).enumerate(5353, "udp")
        assert len(listeners) == 1
        assert listeners[0].state == "BOUND"
        assert listeners[0].local_ip == ""

    def test_exit_status_one_is_accepted(self):
        runner = FakeRunner({("lsof", "-nP", "-iTCP:9"): ""})
        assert DarwinEnumerator(runner).enumerate(9, "tcp") == ([], [])
        assert runner.calls[0][1]["ok_codes"] == (0, 1)


# ── Platform selection ────────────────────────────────────────────────────────

class TestGetEnumerator:
    def test_linux(self):   assert isinstance(get_enumerator("Linux"), LinuxEnumerator)
    def test_darwin(self):  assert isinstance(get_enumerator("Darwin"), DarwinEnumerator)

    def test_windows_unsupported(self):
        e = get_enumerator("Windows")
        assert isinstance(e, UnsupportedEnumerator)
        with pytest.raises(UnsupportedPlatformError, match="Windows"):
            e.enumerate(80, "tcp")

    def test_unsupported_is_enumeration_error(self):
        assert issubclass(UnsupportedPlatformError, EnumerationError)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
