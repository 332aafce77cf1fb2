"""
测试子进程工具、端口探测与启动前检查
"""

import asyncio
import errno
import socket
import sys

import pytest

from conftest import CRASHER, SLEEPER, make_spec
from forward_supervisor.errors import ConnectivityError, ToolNotFoundError
from forward_supervisor.models import Profile
from forward_supervisor.ports import is_port_available, is_port_listening
from forward_supervisor.preflight import build_cluster_info_command, check_cluster_connectivity, require_tool
from forward_supervisor.process import build_port_forward_command, is_alive


def test_build_command_uses_current_context():
    profile = Profile(name="dev", namespace="backend", forwards=[])
    spec = make_spec("api", 8080, "deployment", 80)

    cmd = build_port_forward_command("kubectl", profile, spec)

    assert cmd == [
        "kubectl", "port-forward", "-n", "backend", "--address", "127.0.0.1", "deployment/api", "8080:80",
    ]


def test_build_command_with_context():
    profile = Profile(name="staging", context="staging-cluster", namespace="web", forwards=[])
    spec = make_spec("db", 5432, "service", 5432)

    cmd = build_port_forward_command("/opt/kubectl", profile, spec, address="0.0.0.0")

    assert cmd[:3] == ["/opt/kubectl", "--context", "staging-cluster"]
    assert cmd[-2:] == ["service/db", "5432:5432"]
    assert "0.0.0.0" in cmd


def test_is_alive_tracks_process_exit():
    async def _run():
        sleeper = await asyncio.create_subprocess_exec(*SLEEPER)
        crasher = await asyncio.create_subprocess_exec(*CRASHER, stderr=asyncio.subprocess.DEVNULL)
        try:
            await crasher.wait()
            assert is_alive(sleeper) is True
            assert is_alive(crasher) is False

            sleeper.kill()
            await sleeper.wait()
            assert is_alive(sleeper) is False
        finally:
            if sleeper.returncode is None:
                sleeper.kill()
                await sleeper.wait()

    asyncio.run(_run())


def test_is_alive_none():
    assert is_alive(None) is False


def test_port_probes(free_port):
    port = free_port()
    assert is_port_available("127.0.0.1", port) is True
    assert asyncio.run(is_port_listening("127.0.0.1", port, timeout=0.3)) is False

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
        server.bind(("127.0.0.1", port))
        server.listen()

        assert is_port_available("127.0.0.1", port) is False
        assert asyncio.run(is_port_listening("127.0.0.1", port, timeout=0.3)) is True


def test_port_bind_errors_other_than_in_use_propagate(monkeypatch):
    def _denied(self, address):
        raise PermissionError(errno.EACCES, "Permission denied")

    monkeypatch.setattr(socket.socket, "bind", _denied)
    with pytest.raises(PermissionError):
        is_port_available("127.0.0.1", 80)


def test_require_tool():
    assert require_tool(sys.executable)
    with pytest.raises(ToolNotFoundError, match="kubectl-does-not-exist"):
        require_tool("kubectl-does-not-exist")


def test_cluster_info_command():
    assert build_cluster_info_command("kubectl", None, 10) == ["kubectl", "cluster-info", "--request-timeout=10s"]
    assert build_cluster_info_command("kubectl", "prod", 0.5) == [
        "kubectl", "--context", "prod", "cluster-info", "--request-timeout=1s",
    ]


def test_connectivity_ok(monkeypatch):
    monkeypatch.setattr(
        "forward_supervisor.preflight.build_cluster_info_command",
        lambda kubectl, context, timeout: [sys.executable, "-c", "pass"],
    )
    asyncio.run(check_cluster_connectivity("kubectl", None, timeout=5))


def test_connectivity_failure_is_reported(monkeypatch):
    monkeypatch.setattr(
        "forward_supervisor.preflight.build_cluster_info_command",
        lambda kubectl, context, timeout: [
            sys.executable, "-c", "import sys; sys.stderr.write('Unable to connect to the server\\n'); sys.exit(1)",
        ],
    )
    with pytest.raises(ConnectivityError, match="Unable to connect to the server"):
        asyncio.run(check_cluster_connectivity("kubectl", "prod", timeout=5))


def test_connectivity_timeout(monkeypatch):
    monkeypatch.setattr(
        "forward_supervisor.preflight.build_cluster_info_command",
        lambda kubectl, context, timeout: SLEEPER,
    )
    with pytest.raises(ConnectivityError, match="did not respond"):
        asyncio.run(check_cluster_connectivity("kubectl", None, timeout=0.5))
