"""
测试公共夹具

用短命的 Python 子进程代替 kubectl：
- SLEEPER: 一直运行，不监听端口
- LISTENER: 一直运行并监听 spec.local_port
- CRASHER: 启动后立即报错退出
- STUBBORN: 忽略 SIGTERM
"""

import socket
import sys
from pathlib import Path
from typing import Dict, List

import pytest

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from forward_supervisor.config import AppConfig, SupervisorConfig, reset_config
from forward_supervisor.models import ForwardSpec, Profile

SLEEPER = [sys.executable, "-c", "import time; time.sleep(60)"]
CRASHER = [
    sys.executable,
    "-c",
    "import sys; sys.stderr.write('error: services \"db\" not found\\n'); sys.exit(1)",
]
STUBBORN = [
    sys.executable,
    "-c",
    "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); time.sleep(60)",
]
LISTENER_CODE = (
    "import socket, sys, time\n"
    "s = socket.socket()\n"
    "s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)\n"
    "s.bind(('127.0.0.1', int(sys.argv[1])))\n"
    "s.listen()\n"
    "time.sleep(60)\n"
)


def listener(port: int) -> List[str]:
    return [sys.executable, "-c", LISTENER_CODE, str(port)]


def get_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def make_spec(name: str, port: int, resource_type: str = "deployment", remote_port: int = 80) -> ForwardSpec:
    return ForwardSpec(name=name, resource_type=resource_type, local_port=port, remote_port=remote_port)


class CommandTable:
    """按规则名返回命令的 command_factory，默认 SLEEPER"""

    def __init__(self, commands: Dict[str, List[str]] = None):
        self.commands = dict(commands or {})
        self.calls: List[str] = []

    def __call__(self, spec: ForwardSpec) -> List[str]:
        self.calls.append(spec.name)
        return self.commands.get(spec.name, SLEEPER)


@pytest.fixture(autouse=True)
def fresh_config():
    """每个测试重新加载全局配置"""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def free_port():
    """返回一个取端口的函数，同一个测试内不重复"""
    used = set()

    def _next() -> int:
        while True:
            port = get_free_port()
            if port not in used:
                used.add(port)
                return port

    return _next


@pytest.fixture
def fast_config() -> AppConfig:
    """缩短各类等待时间的配置"""
    return AppConfig(
        supervisor=SupervisorConfig(
            poll_interval=0.2,
            launch_grace=0.5,
            shutdown_grace=0.5,
            kill_timeout=2.0,
            port_probe_timeout=0.3,
        ),
        logging={"file": None},
    )


@pytest.fixture
def two_service_profile(free_port) -> Profile:
    return Profile(
        name="dev",
        namespace="backend",
        forwards=[
            make_spec("api", free_port(), "deployment", 80),
            make_spec("db", free_port(), "service", 5432),
        ],
    )
