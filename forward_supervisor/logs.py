"""
日志配置

控制台 + 滚动文件日志，文件超过 max_bytes（默认 1 MiB）时归档并新建。
"""

import logging
import logging.handlers
import sys
from collections import deque
from pathlib import Path
from typing import List, Optional

from .config import LoggingConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: Optional[LoggingConfig] = None) -> Optional[Path]:
    """
    配置日志

    Args:
        config: 日志配置，None 时使用默认配置

    Returns:
        日志文件路径（未配置文件日志时为 None）
    """
    config = config or LoggingConfig()
    level = getattr(logging, config.level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(console)

    log_path = config.path
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return log_path


def tail_log(path: Optional[Path], lines: int = 50) -> List[str]:
    """返回日志文件最后 N 行，文件不存在时返回空列表"""
    if path is None or lines <= 0 or not path.exists():
        return []
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=lines)]
