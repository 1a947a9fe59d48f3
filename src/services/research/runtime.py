"""
研究核心运行时（进程级组合根）

每个进程构造一组组件实例，注入到请求处理代码和运维路由中。
"""

from __future__ import annotations

from dataclasses import dataclass

from src.clients.http_client import close_http_clients
from src.core.logger import logger
from src.services.cache.contextual_cache import ContextualCache
from src.services.health.monitor import HealthMonitor
from src.services.orchestration.fallback import FallbackOrchestrator
from src.services.rate_limit.retry_client import RateLimitedRetryClient
from src.services.reliability.scorer import ReliabilityScorer
from src.services.research.service import ResearchService


@dataclass
class ResearchRuntime:
    cache: ContextualCache
    scorer: ReliabilityScorer
    monitor: HealthMonitor
    retry_client: RateLimitedRetryClient
    orchestrator: FallbackOrchestrator
    service: ResearchService

    @classmethod
    def create(cls) -> ResearchRuntime:
        """按 config 默认值构造全部组件"""
        cache = ContextualCache()
        scorer = ReliabilityScorer()
        monitor = HealthMonitor()
        retry_client = RateLimitedRetryClient(name="primary")
        orchestrator = FallbackOrchestrator(retry_client=retry_client, monitor=monitor)
        service = ResearchService(cache, orchestrator, scorer, monitor=monitor)
        return cls(
            cache=cache,
            scorer=scorer,
            monitor=monitor,
            retry_client=retry_client,
            orchestrator=orchestrator,
            service=service,
        )

    async def close(self) -> None:
        await self.cache.close()
        await self.monitor.close()
        await close_http_clients()


_runtime: ResearchRuntime | None = None


def get_runtime() -> ResearchRuntime:
    """获取进程级运行时（首次调用时创建）"""
    global _runtime
    if _runtime is None:
        _runtime = ResearchRuntime.create()
        logger.info("[OK] 研究核心运行时已初始化")
    return _runtime


async def shutdown_runtime() -> None:
    global _runtime
    if _runtime is not None:
        await _runtime.close()
        _runtime = None
        logger.info("研究核心运行时已关闭")
