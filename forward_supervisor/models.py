"""
数据模型定义

转发规则、profile、运行时会话记录以及状态快照
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ConfigError


class ResourceType(str, Enum):
    """可转发的资源类型"""
    DEPLOYMENT = "deployment"
    SERVICE = "service"
    POD = "pod"


class SessionState(str, Enum):
    """会话状态"""
    STARTING = "starting"
    RUNNING = "running"
    DEAD = "dead"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class Health(str, Enum):
    """状态快照中的三态健康"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DEAD = "dead"


class ForwardSpec(BaseModel):
    """单条转发规则（不可变）"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, description="资源名称，同时作为会话的唯一键")
    resource_type: ResourceType = Field(..., alias="type", description="资源类型")
    local_port: int = Field(..., ge=1, le=65535, description="本地监听端口")
    remote_port: int = Field(..., ge=1, le=65535, description="远端端口")

    @property
    def resource(self) -> str:
        """kubectl 资源引用，如 deployment/api"""
        return f"{self.resource_type.value}/{self.name}"

    @property
    def ports(self) -> str:
        return f"{self.local_port}:{self.remote_port}"


def duplicate_local_ports(forwards: Iterable[ForwardSpec]) -> Dict[int, List[str]]:
    """
    查找重复的本地端口

    Returns:
        {端口: [规则名...]}，仅包含被多条规则占用的端口
    """
    owners: Dict[int, List[str]] = defaultdict(list)
    for spec in forwards:
        owners[spec.local_port].append(spec.name)
    return {port: names for port, names in owners.items() if len(names) > 1}


class Profile(BaseModel):
    """一组转发规则及其集群上下文"""

    name: str = Field(default="", description="profile 名称")
    context: Optional[str] = Field(default=None, description="kubectl context，空表示当前 context")
    namespace: str = Field(default="default", description="命名空间")
    forwards: List[ForwardSpec] = Field(default_factory=list, description="转发规则列表（有序）")

    @field_validator("context", mode="before")
    @classmethod
    def _empty_context(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def check_forwards(self):
        """
        校验本地端口与规则名在 profile 内唯一（运行该 profile 前调用）

        Raises:
            ConfigError: 存在重复端口或重复名称
        """
        duplicates = duplicate_local_ports(self.forwards)
        if duplicates:
            detail = "; ".join(f"{port} used by {', '.join(names)}" for port, names in sorted(duplicates.items()))
            raise ConfigError(f"Profile '{self.name}' has duplicate local ports: {detail}")

        seen = set()
        for spec in self.forwards:
            if spec.name in seen:
                raise ConfigError(f"Profile '{self.name}' has duplicate forward name: {spec.name}")
            seen.add(spec.name)


@dataclass
class Session:
    """一条转发规则当前（或最近一次）的运行记录，只由 ProcessTable 持有"""

    spec: ForwardSpec
    process: Optional[asyncio.subprocess.Process] = None
    state: SessionState = SessionState.STARTING
    last_error: Optional[str] = None
    restart_count: int = 0
    started_at: Optional[str] = None
    reader: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None


class SessionStatus(BaseModel):
    """单个会话的状态"""
    name: str
    resource: str
    local_port: int
    remote_port: int
    pid: Optional[int] = None
    state: SessionState
    health: Health
    restart_count: int = 0
    last_error: Optional[str] = None
    started_at: Optional[str] = None


class StatusSnapshot(BaseModel):
    """状态快照"""
    profile: str
    generated_at: str
    sessions: List[SessionStatus] = Field(default_factory=list)

    def count(self, health: Health) -> int:
        return sum(1 for s in self.sessions if s.health == health)


class HealthResponse(BaseModel):
    """控制 API 自身的健康检查响应"""
    status: str = "ok"
    profile: str
    sessions: int = 0
    shutting_down: bool = False


class ShutdownResponse(BaseModel):
    """关闭请求响应"""
    accepted: bool = True
    message: str = ""
