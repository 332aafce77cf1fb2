"""
会话启动器

为单条转发规则启动 port-forward 子进程：
    kubectl port-forward -n <ns> <type>/<name> <local>:<remote>

启动前检查本地端口是否空闲，启动后等待 launch_grace 秒确认进程没有立即退出。
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .errors import LaunchError
from .models import ForwardSpec, Profile, Session, SessionState
from .ports import is_port_available
from .process import build_port_forward_command, drain_stderr, is_alive, read_remaining_output
from .table import ProcessTable

logger = logging.getLogger(__name__)

CommandFactory = Callable[[ForwardSpec], List[str]]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class SessionLauncher:
    def __init__(
        self,
        profile: Profile,
        table: ProcessTable,
        kubectl: str = "kubectl",
        launch_grace: float = 1.0,
        bind_address: str = "127.0.0.1",
        command_factory: Optional[CommandFactory] = None,
    ):
        self.profile = profile
        self.table = table
        self.kubectl = kubectl
        self.launch_grace = launch_grace
        self.bind_address = bind_address
        self._command_factory = command_factory

    def build_command(self, spec: ForwardSpec) -> List[str]:
        if self._command_factory is not None:
            return self._command_factory(spec)
        return build_port_forward_command(self.kubectl, self.profile, spec, self.bind_address)

    async def launch(self, spec: ForwardSpec) -> Session:
        """
        启动一条转发

        Args:
            spec: 转发规则

        Returns:
            状态为 RUNNING 的 Session（已写入进程表）

        Raises:
            LaunchError: 会话已在运行、端口被占用、无法创建进程或进程立即退出
        """
        try:
            session = await self._spawn(spec)
        except LaunchError as e:
            logger.error(f"Failed to start port-forward {e}")
            raise
        logger.info(
            f"Started port-forward {spec.name} ({spec.resource} {spec.ports}, pid {session.pid})"
        )
        return session

    async def restart(self, spec: ForwardSpec) -> Session:
        """
        重启一条已存在的会话：DEAD -> RESTARTING -> RUNNING，失败则回到 DEAD

        结果日志由调用方（巡检循环）记录。

        Raises:
            LaunchError: 重启失败
        """
        session = self.table.get(spec.name)
        if session is None:
            return await self.launch(spec)

        session.state = SessionState.RESTARTING
        session.restart_count += 1
        try:
            return await self._spawn(spec)
        except LaunchError as e:
            self.table.set_state(spec.name, SessionState.DEAD, last_error=e.output or e.detail)
            raise

    async def _spawn(self, spec: ForwardSpec) -> Session:
        existing = self.table.get(spec.name)
        if existing is not None and existing.state in (SessionState.STARTING, SessionState.RUNNING):
            raise LaunchError(spec.name, LaunchError.ALREADY_ACTIVE, f"session already {existing.state.value}")

        try:
            available = is_port_available(self.bind_address, spec.local_port)
        except OSError as e:
            raise LaunchError(
                spec.name, LaunchError.SPAWN_FAILED, f"cannot bind {self.bind_address}:{spec.local_port}: {e}"
            )
        if not available:
            raise LaunchError(
                spec.name, LaunchError.PORT_IN_USE, f"local port {self.bind_address}:{spec.local_port} already in use"
            )

        cmd = self.build_command(spec)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise LaunchError(spec.name, LaunchError.SPAWN_FAILED, f"cannot start {cmd[0]}: {e}")

        if existing is not None:
            if existing.reader is not None and not existing.reader.done():
                existing.reader.cancel()
            session = existing
            if session.state != SessionState.RESTARTING:
                session.state = SessionState.STARTING
        else:
            session = Session(spec=spec)
        session.process = proc
        session.reader = None
        self.table.put(session)

        await asyncio.sleep(self.launch_grace)

        if not is_alive(proc):
            output = await read_remaining_output(proc)
            rc = await proc.wait()
            detail = f"exited with code {rc} within {self.launch_grace:g}s"
            if existing is None:
                self.table.remove(spec.name)
            else:
                self.table.set_state(spec.name, SessionState.DEAD, last_error=output or detail)
            raise LaunchError(spec.name, LaunchError.IMMEDIATE_EXIT, detail, output or None)

        session.state = SessionState.RUNNING
        session.started_at = _utc_now_iso()
        session.last_error = None
        session.reader = asyncio.create_task(drain_stderr(session))
        return session
