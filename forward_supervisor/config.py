"""
配置加载模块

从 YAML 文件加载配置，支持 Pydantic 验证和环境变量覆盖。
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError, ProfileNotFoundError
from .models import Profile

DEFAULT_CONFIG_PATH = "~/.forward-supervisor/config.yaml"
CONFIG_ENV = "FORWARD_SUPERVISOR_CONFIG"


class SupervisorConfig(BaseModel):
    """巡检与超时配置（单位：秒）"""
    poll_interval: float = Field(default=5.0, gt=0, description="巡检周期")
    launch_grace: float = Field(default=1.0, ge=0, description="启动后确认存活的等待时间")
    shutdown_grace: float = Field(default=2.0, ge=0, description="优雅终止等待时间")
    kill_timeout: float = Field(default=2.0, ge=0, description="强制结束后等待回收的时间")
    connectivity_timeout: float = Field(default=10.0, gt=0, description="集群连通性检查超时")
    port_probe_timeout: float = Field(default=0.5, gt=0, description="端口探测超时")
    bind_address: str = Field(default="127.0.0.1", description="port-forward 监听地址")


class ControlConfig(BaseModel):
    """本地控制 API 配置"""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = Field(default=9180, ge=1, le=65535)
    token: Optional[str] = None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = "~/.forward-supervisor/supervisor.log"
    max_bytes: int = Field(default=1024 * 1024, gt=0)
    backup_count: int = Field(default=5, ge=0)

    @property
    def path(self) -> Optional[Path]:
        return Path(self.file).expanduser() if self.file else None


class AppConfig(BaseModel):
    """应用配置（完整配置）"""
    kubectl: str = "kubectl"
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    control: ControlConfig = Field(default_factory=ControlConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    profiles: Dict[str, Profile] = Field(default_factory=dict)

    def profile_names(self) -> List[str]:
        return sorted(self.profiles)

    def get_profile(self, name: str) -> Profile:
        """
        按名称获取 profile

        Raises:
            ProfileNotFoundError: profile 不存在时抛出，附带可用名称列表
            ConfigError: profile 内本地端口或规则名重复
        """
        profile = self.profiles.get(name)
        if profile is None:
            raise ProfileNotFoundError(name, self.profile_names())
        profile = profile.model_copy(update={"name": name})
        profile.check_forwards()
        return profile


def resolve_config_path(config_path: Optional[str] = None) -> Path:
    """
    确定配置文件路径

    优先级：
    1. 参数指定的路径
    2. 环境变量 FORWARD_SUPERVISOR_CONFIG
    3. 默认路径 ~/.forward-supervisor/config.yaml
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV, DEFAULT_CONFIG_PATH)
    return Path(config_path).expanduser()


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    Args:
        config_path: 配置文件路径

    Returns:
        AppConfig 实例

    Raises:
        ConfigError: 文件不存在、YAML 无法解析或校验失败
    """
    config_file = resolve_config_path(config_path)
    if not config_file.exists():
        raise ConfigError(f"Config file not found: {config_file}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {config_file}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError(f"Config file {config_file} must contain a mapping")

    # 日志文件相对路径按配置文件所在目录解析
    log_section = raw_config.get("logging") or {}
    log_file = log_section.get("file")
    if log_file and not Path(log_file).expanduser().is_absolute():
        log_section["file"] = str((config_file.parent / log_file).resolve())
        raw_config["logging"] = log_section

    try:
        return AppConfig(**raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {config_file}:\n{e}") from e


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config(config_path: Optional[str] = None) -> AppConfig:
    """获取全局配置实例"""
    global _config
    if _config is None:
        _config = load_config(config_path)
    return _config


def reset_config():
    """重置全局配置（主要用于测试）"""
    global _config
    _config = None
