"""
关闭控制

对所有未停止的会话先发 SIGTERM，等待 shutdown_grace 秒，仍存活的发 SIGKILL；
最后全部标记为 STOPPED 并清空进程表。重复调用只记录日志。
"""

import asyncio
import logging
from typing import Dict

from .models import Session, SessionState
from .process import is_alive, send_kill, send_terminate
from .table import ProcessTable

logger = logging.getLogger(__name__)


class ShutdownController:
    def __init__(self, table: ProcessTable, grace: float = 2.0, kill_timeout: float = 2.0):
        self.table = table
        self.grace = grace
        self.kill_timeout = kill_timeout

    async def shutdown(self) -> int:
        """
        停止所有会话

        Returns:
            收到 SIGTERM 的进程数量
        """
        sessions = [s for s in self.table.sessions() if s.state != SessionState.STOPPED]
        logger.info(f"Shutdown requested, stopping {len(sessions)} port-forward(s)")

        waiters: Dict[str, asyncio.Task] = {}
        for session in sessions:
            if not is_alive(session.process):
                continue
            if send_terminate(session.process):
                logger.info(f"Sent SIGTERM to {session.name} (pid {session.pid})")
                waiters[session.name] = asyncio.create_task(session.process.wait())

        if waiters:
            await asyncio.wait(list(waiters.values()), timeout=self.grace)

        stubborn = [s for s in sessions if s.name in waiters and not waiters[s.name].done()]
        for session in stubborn:
            logger.info(
                f"{session.name} (pid {session.pid}) still running after {self.grace:g}s, sending SIGKILL"
            )
            send_kill(session.process)
        if stubborn:
            _, pending = await asyncio.wait([waiters[s.name] for s in stubborn], timeout=self.kill_timeout)
            for task in pending:
                task.cancel()

        for session in sessions:
            self._stop_reader(session)
            session.state = SessionState.STOPPED
        self.table.clear()

        logger.info(f"Shutdown complete ({len(waiters)} terminated, {len(stubborn)} killed)")
        return len(waiters)

    @staticmethod
    def _stop_reader(session: Session):
        if session.reader is not None and not session.reader.done():
            session.reader.cancel()
        session.reader = None
