"""
研究服务门面

请求处理代码的统一入口：
1. 查询上下文缓存，命中直接返回（from_cache=True，附带按缓存写入时间计算的新鲜度）
2. 未命中时经降级编排器调用主 / 备服务
3. 校验结果中的来源 URL，以有效来源的平均分作为结果可信度
4. 将结果与高质量来源写入缓存

主备均失败时 BothProvidersFailed 原样传播，不写缓存。
"""

from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from src.core.logger import logger
from src.models.research import ContentClass, FallbackResult, RequesterContext
from src.services.cache.contextual_cache import ContextualCache
from src.services.health.monitor import HealthMonitor
from src.services.orchestration.fallback import FallbackOrchestrator
from src.services.reliability.scorer import ReliabilityScorer
from src.services.research.freshness import calculate_freshness


class ResearchService:
    """研究服务（缓存 -> 编排 -> 来源校验 -> 缓存写入）"""

    def __init__(
        self,
        cache: ContextualCache,
        orchestrator: FallbackOrchestrator,
        scorer: ReliabilityScorer,
        monitor: HealthMonitor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.orchestrator = orchestrator
        self.scorer = scorer
        self.monitor = monitor
        self._clock = clock

    async def research(
        self,
        base_key: str,
        primary_op: Callable[[], Awaitable[Any]],
        fallback_op: Callable[[], Awaitable[Any]],
        context: RequesterContext,
        content_class: str = ContentClass.GENERAL,
        sources_of: Callable[[Any], list[str]] | None = None,
    ) -> FallbackResult[Any]:
        """
        执行一次研究请求

        Args:
            base_key: 查询键（如检索语句）
            primary_op: 主服务调用
            fallback_op: 备用服务调用
            context: 调用方画像
            content_class: 内容类别
            sources_of: 从载荷中提取来源 URL 的函数，不提供则跳过来源校验

        Raises:
            BothProvidersFailed: 主备服务均失败
        """
        cached = self.cache.get(base_key, context, content_class)
        if cached is not None:
            entry = self.cache.peek(base_key, context, content_class)
            freshness = None
            if entry is not None:
                freshness = calculate_freshness(
                    datetime.fromtimestamp(entry.created_at, tz=timezone.utc),
                    "trends" if content_class == ContentClass.TRENDING else "general",
                    now=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
                )
            logger.debug(
                "[CACHE] 研究结果命中缓存: {} ({})",
                content_class,
                freshness.age if freshness else "unknown age",
            )
            return replace(cached, from_cache=True, freshness=freshness)

        result = await self.orchestrator.execute_with_fallback(
            primary_op, fallback_op, context, content_class
        )

        high_quality: list[str] = []
        sources = sources_of(result.data) if sources_of else []
        if sources:
            validations = await self.scorer.validate_batch(sources)
            summary = self.scorer.get_reliability_summary(validations)
            high_quality = self.scorer.get_high_quality_sources(validations)
            if summary.valid_sources:
                result = replace(result, reliability=float(summary.average_score))

            if self.monitor is not None:
                accessible = any(v.is_accessible for v in validations)
                self.monitor.update_service_status("validation", "up" if accessible else "down")

            logger.info(
                "[SOURCE] {} 个来源，有效 {}，高质量 {}，平均分 {}",
                summary.total_sources,
                summary.valid_sources,
                summary.high_quality_sources,
                summary.average_score,
            )

        self.cache.set(
            base_key,
            result,
            context,
            content_class,
            sources=high_quality,
            reliability=result.reliability,
        )
        return result

    def on_profile_changed(self, context: RequesterContext) -> int:
        """调用方画像变更时失效其全部缓存"""
        return self.cache.invalidate_by_context(context)
