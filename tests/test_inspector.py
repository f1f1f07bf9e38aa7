"""
tests/test_inspector.py
End-to-end inspection with a scripted enumerator, ps and environment.
Run: pytest tests/test_inspector.py -v
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from core.docker_map import DockerMapper
from core.enricher import ProcessEnricher
from core.inspector import InspectError, InspectOptions, Inspector
from core.model import Listener
from core.sockets import EnumerationError, LinuxEnumerator, UnsupportedEnumerator
from tests.fakes import FakeEnv, FakeRunner, StaticEnumerator, ps_replies
from tests.test_sockets import SS_TCP


def make_inspector(enumerator, runner=None, env=None, docker=None):
    runner = runner or FakeRunner()
    return Inspector(
        enumerator=enumerator,
        enricher=ProcessEnricher(runner),
        docker=docker or DockerMapper(runner, which=lambda _: None),
        env=env or FakeEnv(),
    )


class TestInspect:
    def test_postgres_on_loopback(self):
        runner = FakeRunner({
            ("ss", "-H", "-ltnp", "sport = :5432"): SS_TCP,
            **ps_replies(8123, comm="postgres", user="postgres", command="postgres -D /data"),
        })
        rep = make_inspector(LinuxEnumerator(runner), runner).inspect(5432, "tcp")
        assert rep.key == "5432/tcp"
        assert len(rep.listeners) == 2
        primary = rep.primary_listener()
        assert (primary.pid, primary.proc_name, primary.user) == (8123, "postgres", "postgres")
        kinds = [d.kind for d in rep.diagnostics]
        assert kinds == ["in-use", "loopback-only"]
        assert rep.host.hostname == "testhost"
        assert rep.generated.tzinfo is not None

    def test_privileged_port_without_pid(self):
        enum = StaticEnumerator([Listener("0.0.0.0", 80, family="ipv4", state="LISTEN")])
        rep = make_inspector(enum).inspect(80)
        kinds = [d.kind for d in rep.diagnostics]
        assert "permission" in kinds
        assert "pid-missing" in kinds
        assert rep.primary_listener().pid == 0

    def test_free_port(self):
        rep = make_inspector(StaticEnumerator()).inspect(45678)
        assert rep.listeners == [] and rep.diagnostics == []
        assert rep.docker.checked is False

    def test_docker_only_when_enabled(self):
        enum = StaticEnumerator()
        rep = make_inspector(enum).inspect(8080, "tcp", InspectOptions(enable_docker=True))
        assert rep.docker.checked is True

    def test_docker_mapped_port_without_listener(self):
        cid = "abc123def456"
        runner = FakeRunner({
            ("docker", "ps", "--format", "{{.ID}} {{.Names}}"): f"{cid} web\n",
            ("docker", "port", cid): "80/tcp -> 0.0.0.0:80\n80/tcp -> [::]:80\n",
            ("docker", "inspect", "-f",
             '{{ index .Config.Labels "com.docker.compose.service" }}', cid): "frontend\n",
        })
        docker = DockerMapper(runner, which=lambda _: "/usr/bin/docker")
        rep = make_inspector(StaticEnumerator(), runner, docker=docker).inspect(
            80, "tcp", InspectOptions(enable_docker=True))
        assert rep.primary_listener() is None
        assert rep.docker.mapped is True
        assert (rep.docker.container_name, rep.docker.compose_service) == ("web", "frontend")
        assert rep.docker.container_port == "80/tcp"
        assert "docker" in [d.kind for d in rep.diagnostics]

    def test_connections_flag_passed_through(self):
        enum = StaticEnumerator()
        make_inspector(enum).inspect(8080, "tcp", InspectOptions(include_connections=True))
        assert enum.calls == [(8080, "tcp", True)]

    def test_check_uses_plain_flags(self):
        enum = StaticEnumerator()
        rep = make_inspector(enum).check(8080, "udp", docker=True, connections=True)
        assert enum.calls == [(8080, "udp", True)]
        assert rep.docker.checked

    @pytest.mark.parametrize("port", [0, -1, 65536, "80"])
    def test_invalid_port(self, port):
        with pytest.raises(InspectError):
            make_inspector(StaticEnumerator()).inspect(port)

    def test_invalid_proto(self):
        with pytest.raises(InspectError, match="protocol"):
            make_inspector(StaticEnumerator()).inspect(80, "sctp")

    def test_enumeration_error_propagates(self):
        enum = StaticEnumerator(error=EnumerationError("ss failed"))
        with pytest.raises(EnumerationError):
            make_inspector(enum).inspect(8080)

    def test_unsupported_platform_propagates(self):
        with pytest.raises(EnumerationError):
            make_inspector(UnsupportedEnumerator("Plan9")).inspect(8080)

    def test_same_state_same_signature(self):
        enum = StaticEnumerator([Listener("0.0.0.0", 8080, state="LISTEN", pid=5, proc_name="node")])
        ins = make_inspector(enum)
        assert ins.inspect(8080).signature() == ins.inspect(8080).signature()


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
