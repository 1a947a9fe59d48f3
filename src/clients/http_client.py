"""
来源探测 HTTP 客户端

可信度评分的 HEAD 探测在进程内复用同一个 httpx.AsyncClient：
跟随重定向、固定 User-Agent、超时取 SOURCE_PROBE_TIMEOUT_SECONDS，
连接池上限与 keep-alive 取 HTTP_* 配置。
"""

from __future__ import annotations

import asyncio

import httpx

from src.config.constants import ReliabilityDefaults
from src.config.settings import config
from src.core.logger import logger

# 模块级锁，避免并发的首次探测重复创建客户端
_probe_client_lock = asyncio.Lock()


class HTTPClientPool:
    """探测客户端单例"""

    _instance: HTTPClientPool | None = None
    _probe_client: httpx.AsyncClient | None = None

    def __new__(cls) -> "HTTPClientPool":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    async def get_probe_client(cls) -> httpx.AsyncClient:
        if cls._probe_client is not None:
            return cls._probe_client

        async with _probe_client_lock:
            if cls._probe_client is None:
                cls._probe_client = httpx.AsyncClient(
                    timeout=httpx.Timeout(config.source_probe_timeout_seconds),
                    limits=httpx.Limits(
                        max_connections=config.http_max_connections,
                        max_keepalive_connections=config.http_keepalive_connections,
                        keepalive_expiry=config.http_keepalive_expiry,
                    ),
                    headers={"User-Agent": ReliabilityDefaults.USER_AGENT},
                    follow_redirects=True,
                )
                logger.info(
                    "[SOURCE] 探测客户端已初始化: timeout={}s, max_connections={}",
                    config.source_probe_timeout_seconds,
                    config.http_max_connections,
                )
        return cls._probe_client

    @classmethod
    async def close(cls) -> None:
        if cls._probe_client is not None:
            await cls._probe_client.aclose()
            cls._probe_client = None
            logger.info("[SOURCE] 探测客户端已关闭")


async def close_http_clients() -> None:
    """关闭共享 HTTP 客户端（进程退出时调用）"""
    await HTTPClientPool.close()
