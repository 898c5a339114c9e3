"""
日志配置模块
"""

import logging
import os
import sys
from typing import Optional

LOG_LEVEL_ENV = "THREEDTILES_LOG_LEVEL"
LOG_FORMAT = "[%(levelname)s] %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """
    配置根日志记录器（只配置一次）

    日志级别优先级：
      - 参数 level
      - 环境变量 THREEDTILES_LOG_LEVEL
      - 默认 INFO
    """
    root = logging.getLogger()
    if getattr(root, "_threedtiles_configured", False):
        if level:
            root.setLevel(_level(level))
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_level(level or os.environ.get(LOG_LEVEL_ENV) or "INFO"))
    root._threedtiles_configured = True  # type: ignore[attr-defined]


def _level(name: str) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO
