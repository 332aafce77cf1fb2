"""
健康巡检循环

每 poll_interval 秒扫描一次进程表：
- RUNNING 但进程已退出的会话标记为 DEAD 并立即重启
- 上一轮重启失败（仍为 DEAD）的会话本轮再重启一次

不做退避、不设重试上限，每轮每个会话最多重启一次。
"""

import asyncio
import logging
from typing import List

from .errors import LaunchError
from .launcher import SessionLauncher
from .models import SessionState
from .process import is_alive
from .table import ProcessTable

logger = logging.getLogger(__name__)


class HealthMonitor:
    def __init__(self, table: ProcessTable, launcher: SessionLauncher, poll_interval: float = 5.0):
        self.table = table
        self.launcher = launcher
        self.poll_interval = poll_interval
        self.cycles = 0

    async def scan_once(self) -> List[str]:
        """
        执行一轮巡检

        Returns:
            本轮尝试重启的会话名列表
        """
        attempted = []
        for session in self.table.sessions():
            if session.state == SessionState.RUNNING:
                if is_alive(session.process):
                    continue
                rc = session.process.returncode if session.process is not None else None
                self.table.set_state(session.name, SessionState.DEAD)
                logger.error(
                    f"Port-forward {session.name} (pid {session.pid}) died"
                    + (f" with exit code {rc}" if rc is not None else "")
                )
            elif session.state != SessionState.DEAD:
                continue

            attempted.append(session.name)
            try:
                restarted = await self.launcher.restart(session.spec)
            except LaunchError as e:
                logger.error(f"Restart of port-forward {session.name} failed, will retry next cycle: {e.detail}")
            else:
                logger.info(
                    f"Port-forward {session.name} restarted (pid {restarted.pid}, attempt {restarted.restart_count})"
                )

        self.cycles += 1
        return attempted

    async def run(self, stop_event: asyncio.Event, lock: asyncio.Lock):
        """
        巡检主循环

        stop_event 只打断两轮之间的等待，进行中的一轮会跑完。
        """
        logger.info(f"Starting health monitor (interval={self.poll_interval:g}s)")
        while not stop_event.is_set():
            async with lock:
                await self.scan_once()

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Health monitor stopped")
