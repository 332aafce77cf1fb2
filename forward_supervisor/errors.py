"""
异常定义

致命错误（配置、连通性、工具缺失、全部启动失败）向上传播到 CLI，
单个会话的启动失败以 LaunchError 形式在调用方记录后继续。
"""

from typing import Dict, List, Optional


class SupervisorError(Exception):
    """所有守护进程错误的基类"""


class ConfigError(SupervisorError):
    """配置文件缺失、无法解析或校验失败"""


class ProfileNotFoundError(SupervisorError):
    """指定的 profile 不存在"""

    def __init__(self, name: str, available: List[str]):
        self.name = name
        self.available = sorted(available)
        hint = ", ".join(self.available) if self.available else "(none configured)"
        super().__init__(f"Profile '{name}' not found. Available profiles: {hint}")


class ToolNotFoundError(SupervisorError):
    """缺少必需的外部命令"""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"Required tool '{tool}' not found in PATH")


class ConnectivityError(SupervisorError):
    """集群不可达"""


class LaunchError(SupervisorError):
    """单个转发会话启动失败（非致命）"""

    PORT_IN_USE = "port_in_use"
    ALREADY_ACTIVE = "already_active"
    SPAWN_FAILED = "spawn_failed"
    IMMEDIATE_EXIT = "immediate_exit"

    def __init__(self, spec_name: str, kind: str, detail: str, output: Optional[str] = None):
        self.spec_name = spec_name
        self.kind = kind
        self.detail = detail
        self.output = output
        message = f"{spec_name}: {detail}"
        if output:
            message = f"{message} ({output})"
        super().__init__(message)


class AllLaunchesFailedError(SupervisorError):
    """profile 中所有转发规则都未能启动"""

    def __init__(self, failures: Dict[str, LaunchError]):
        self.failures = failures
        names = ", ".join(failures) or "(no forwards)"
        super().__init__(f"All port-forwards failed to launch: {names}")
