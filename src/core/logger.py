"""
研究核心日志 - 基于 loguru

级别约定:
- DEBUG: 缓存命中/未命中、单次尝试细节、来源探测结果
- INFO:  降级切换、缓存淘汰与失效、健康状态变化
- WARNING: 主服务尝试失败、预判降级、限流等待
- ERROR: 主备服务均不可用、限流重试耗尽

每条日志以组件标签开头: [CACHE] [SOURCE] [RATE-LIMIT] [FALLBACK] [HEALTH]

环境变量:
- LOG_LEVEL: 控制台级别（默认开发 DEBUG，容器内 INFO）
- LOG_DISABLE_FILE: true 时不写文件（测试使用）
- LOG_DIR: 文件日志目录（默认 <项目根>/logs）
- LOG_RETENTION_DAYS: 文件保留天数（默认 30）

使用方式:
    from src.core.logger import logger

    logger.info("[FALLBACK] 已使用备用服务: {}", reason)
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

from loguru import logger

IS_DOCKER = (
    os.path.exists("/.dockerenv")
    or os.environ.get("DOCKER_CONTAINER", "false").lower() == "true"
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if IS_DOCKER else "DEBUG").upper()
DISABLE_FILE_LOG = os.getenv("LOG_DISABLE_FILE", "false").lower() == "true"
LOG_DIR = Path(os.getenv("LOG_DIR") or Path(__file__).resolve().parent.parent.parent / "logs")
LOG_RETENTION_DAYS = int(os.getenv("LOG_RETENTION_DAYS", "30"))

CONSOLE_FORMAT_DEV = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{message}</cyan>"
)
CONSOLE_FORMAT_PROD = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"

# 标准库 logging 输出噪音较大的第三方库
_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _add_console_sink() -> None:
    if IS_DOCKER:
        logger.add(
            sys.stdout,
            format=CONSOLE_FORMAT_PROD,
            level=LOG_LEVEL,
            colorize=False,
            backtrace=False,
            diagnose=False,
        )
    else:
        logger.add(sys.stdout, format=CONSOLE_FORMAT_DEV, level=LOG_LEVEL, colorize=True)


def _add_file_sinks(log_dir: Path) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)

    # enqueue=False: 同步写入，不创建多进程队列
    options: dict[str, Any] = {
        "format": FILE_FORMAT,
        "retention": f"{LOG_RETENTION_DAYS} days",
        "compression": "gz",
        "enqueue": False,
        "encoding": "utf-8",
        "catch": True,
    }
    if IS_DOCKER:
        options.update(backtrace=False, diagnose=False)

    logger.add(log_dir / "research.log", level="DEBUG", rotation="100 MB", **options)
    logger.add(log_dir / "error.log", level="ERROR", rotation="50 MB", **options)


def configure_logging() -> None:
    """重建全部 sink（导入时执行一次）"""
    logger.remove()
    _add_console_sink()
    if not DISABLE_FILE_LOG:
        _add_file_sinks(LOG_DIR)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


configure_logging()

__all__ = ["logger", "configure_logging"]
