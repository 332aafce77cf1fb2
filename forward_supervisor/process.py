"""
转发子进程工具

构造 kubectl port-forward 命令、判断进程存活、读取 stderr。
"""

import asyncio
import logging
from typing import List, Optional

import psutil

from .models import ForwardSpec, Profile, Session

logger = logging.getLogger(__name__)


def build_port_forward_command(
    kubectl: str,
    profile: Profile,
    spec: ForwardSpec,
    address: str = "127.0.0.1",
) -> List[str]:
    """
    构造 port-forward 命令

    kubectl [--context C] port-forward -n NS --address A TYPE/NAME LOCAL:REMOTE
    """
    cmd = [kubectl]
    if profile.context:
        cmd += ["--context", profile.context]
    cmd += [
        "port-forward",
        "-n",
        profile.namespace,
        "--address",
        address,
        spec.resource,
        spec.ports,
    ]
    return cmd


def is_alive(proc: Optional[asyncio.subprocess.Process]) -> bool:
    """
    进程是否仍在运行

    已退出（有 returncode）、已不存在或僵尸进程都视为不存活。
    """
    if proc is None or proc.returncode is not None:
        return False
    try:
        p = psutil.Process(proc.pid)
        return p.is_running() and p.status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


def send_terminate(proc: asyncio.subprocess.Process) -> bool:
    """发送 SIGTERM，进程已退出时返回 False"""
    try:
        proc.terminate()
        return True
    except ProcessLookupError:
        return False


def send_kill(proc: asyncio.subprocess.Process) -> bool:
    """发送 SIGKILL，进程已退出时返回 False"""
    try:
        proc.kill()
        return True
    except ProcessLookupError:
        return False


async def read_remaining_output(proc: asyncio.subprocess.Process, timeout: float = 1.0) -> str:
    """读取已退出进程残留的 stderr 输出"""
    if proc.stderr is None:
        return ""
    try:
        data = await asyncio.wait_for(proc.stderr.read(), timeout=timeout)
    except (asyncio.TimeoutError, OSError):
        return ""
    return data.decode(errors="replace").strip()


async def drain_stderr(session: Session):
    """持续读取会话 stderr，最后一行记为 last_error"""
    proc = session.process
    if proc is None or proc.stderr is None:
        return
    try:
        while True:
            line = await proc.stderr.readline()
            if not line:
                return
            text = line.decode(errors="replace").strip()
            if not text:
                continue
            session.last_error = text
            logger.info(f"{session.name}: {text}")
    except asyncio.CancelledError:
        return
    except Exception as e:
        logger.debug(f"{session.name}: stderr reader error: {e}")
