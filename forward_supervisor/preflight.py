"""
启动前检查

- 必需的外部命令（kubectl）是否存在
- 集群是否可达（只在启动时检查一次）
"""

import asyncio
import logging
import math
import shutil
from typing import List, Optional

from .errors import ConnectivityError, ToolNotFoundError
from .process import send_kill

logger = logging.getLogger(__name__)


def require_tool(name: str) -> str:
    """
    查找外部命令

    Returns:
        可执行文件的完整路径

    Raises:
        ToolNotFoundError: 命令不存在
    """
    path = shutil.which(name)
    if not path:
        raise ToolNotFoundError(name)
    return path


def build_cluster_info_command(kubectl: str, context: Optional[str], timeout: float) -> List[str]:
    cmd = [kubectl]
    if context:
        cmd += ["--context", context]
    cmd += ["cluster-info", f"--request-timeout={max(1, math.ceil(timeout))}s"]
    return cmd


async def check_cluster_connectivity(kubectl: str, context: Optional[str] = None, timeout: float = 10.0):
    """
    检查集群连通性

    Raises:
        ConnectivityError: 命令失败或超时
    """
    target = f"context '{context}'" if context else "current context"
    cmd = build_cluster_info_command(kubectl, context, timeout)
    logger.info(f"Checking cluster connectivity ({target})")

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ConnectivityError(f"Cannot run {kubectl}: {e}") from e

    try:
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout + 1)
    except asyncio.TimeoutError:
        send_kill(proc)
        await proc.wait()
        raise ConnectivityError(f"Cluster ({target}) did not respond within {timeout:g}s")

    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip().splitlines()
        reason = detail[-1] if detail else f"exit code {proc.returncode}"
        raise ConnectivityError(f"Cannot reach cluster ({target}): {reason}")

    logger.info(f"Cluster reachable ({target})")
