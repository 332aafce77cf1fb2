"""
端口转发守护进程

启动流程：
1. 校验 profile（本地端口不可重复）
2. 依次启动全部转发规则，全部失败则退出
3. 运行健康巡检循环，直到收到关闭请求
4. 关闭所有会话

控制入口（可在任意时刻触发，不直接修改进程表）：
- SIGINT / SIGTERM / POST /v1/shutdown -> request_shutdown()
- SIGUSR1 / GET /v1/status -> request_status() / reporter.report()
"""

import asyncio
import contextlib
import logging
import signal
from typing import Dict, List, Optional, Set

import uvicorn

from .api import create_app
from .config import AppConfig
from .errors import AllLaunchesFailedError, LaunchError
from .launcher import CommandFactory, SessionLauncher
from .models import Profile, Session
from .monitor import HealthMonitor
from .ports import is_port_available
from .reporter import StatusReporter, render_snapshot
from .shutdown import ShutdownController
from .table import ProcessTable

logger = logging.getLogger(__name__)


class _ControlServer(uvicorn.Server):
    """不接管信号的 uvicorn Server，信号由 Supervisor 统一处理"""

    def install_signal_handlers(self):
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class Supervisor:
    def __init__(
        self,
        profile: Profile,
        config: Optional[AppConfig] = None,
        kubectl: Optional[str] = None,
        command_factory: Optional[CommandFactory] = None,
    ):
        self.profile = profile
        self.config = config or AppConfig()
        settings = self.config.supervisor

        self.table = ProcessTable()
        self.launcher = SessionLauncher(
            profile,
            self.table,
            kubectl=kubectl or self.config.kubectl,
            launch_grace=settings.launch_grace,
            bind_address=settings.bind_address,
            command_factory=command_factory,
        )
        self.monitor = HealthMonitor(self.table, self.launcher, poll_interval=settings.poll_interval)
        self.shutdown_controller = ShutdownController(
            self.table, grace=settings.shutdown_grace, kill_timeout=settings.kill_timeout
        )
        self.reporter = StatusReporter(
            self.table,
            profile.name,
            host=settings.bind_address,
            probe_timeout=settings.port_probe_timeout,
        )

        self.launch_failures: Dict[str, LaunchError] = {}
        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._background: Set[asyncio.Task] = set()
        self._signals: List[int] = []
        self._server: Optional[_ControlServer] = None
        self._server_task: Optional[asyncio.Task] = None

    @property
    def shutting_down(self) -> bool:
        return self._stop.is_set()

    async def start(self) -> List[Session]:
        """
        启动 profile 中的全部转发

        Returns:
            成功启动的会话

        Raises:
            ConfigError: 本地端口或规则名重复（不会启动任何进程）
            AllLaunchesFailedError: 所有规则都启动失败
        """
        self.profile.check_forwards()

        logger.info(
            f"Launching {len(self.profile.forwards)} port-forward(s) for profile '{self.profile.name}' "
            f"(namespace={self.profile.namespace}, context={self.profile.context or 'current'})"
        )

        launched = []
        async with self._lock:
            for spec in self.profile.forwards:
                try:
                    launched.append(await self.launcher.launch(spec))
                except LaunchError as e:
                    self.launch_failures[spec.name] = e

        if not launched:
            raise AllLaunchesFailedError(self.launch_failures)

        logger.info(f"{len(launched)}/{len(self.profile.forwards)} port-forward(s) running")
        return launched

    def request_shutdown(self):
        if not self._stop.is_set():
            logger.info("Shutdown requested")
        self._stop.set()

    def request_status(self):
        """异步打印状态快照，不阻塞巡检循环"""
        task = asyncio.get_running_loop().create_task(self.print_status())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def print_status(self):
        snapshot = await self.reporter.report()
        print(render_snapshot(snapshot), flush=True)

    async def shutdown(self) -> int:
        """等待进行中的启动/巡检结束后关闭所有会话"""
        async with self._lock:
            return await self.shutdown_controller.shutdown()

    async def run(self):
        """
        运行到收到关闭请求为止

        Raises:
            ConfigError / AllLaunchesFailedError: 启动阶段的致命错误
        """
        self._install_signal_handlers()
        try:
            await self.start()
            await self._start_control_server()
            await self.monitor.run(self._stop, self._lock)
        finally:
            await self._stop_control_server()
            await self.shutdown()
            self._remove_signal_handlers()

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        handlers = {
            signal.SIGINT: self.request_shutdown,
            signal.SIGTERM: self.request_shutdown,
        }
        if hasattr(signal, "SIGUSR1"):
            handlers[signal.SIGUSR1] = self.request_status

        for sig, handler in handlers.items():
            try:
                loop.add_signal_handler(sig, handler)
                self._signals.append(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug(f"Signal {sig} handler not supported here")

    def _remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals = []

    async def _start_control_server(self):
        control = self.config.control
        if not control.enabled:
            return
        try:
            available = is_port_available(control.host, control.port)
        except OSError as e:
            logger.error(f"Cannot bind control API to {control.host}:{control.port}: {e}, control API disabled")
            return
        if not available:
            logger.error(f"Control API port {control.host}:{control.port} in use, control API disabled")
            return

        server_config = uvicorn.Config(
            app=create_app(self, token=control.token),
            host=control.host,
            port=control.port,
            log_level="warning",
            access_log=False,
        )
        self._server = _ControlServer(server_config)
        self._server_task = asyncio.create_task(self._server.serve())
        logger.info(f"Control API listening on {control.base_url}")

    async def _stop_control_server(self):
        if self._server is None or self._server_task is None:
            return
        self._server.should_exit = True
        try:
            await asyncio.wait_for(self._server_task, timeout=5)
        except asyncio.TimeoutError:
            self._server_task.cancel()
        except Exception as e:
            logger.error(f"Control API stopped with error: {e}")
        self._server = None
        self._server_task = None
