"""
上下文感知缓存 - 按 (查询, 调用方画像, 内容类别) 缓存研究结果

功能：
1. 上下文缓存键：查询 + 主领域 + 内容类别 + 平台 + 目标受众
2. 智能 TTL：按内容类别、领域变化速度、可信度动态计算
3. 智能失效：快速领域的热点内容、低可信度内容提前过期
4. 严格 LRU 淘汰（按 last_accessed）
5. 按画像 / 按内容类别批量失效

所有方法均为同步方法，不包含挂起点，读-改-写在单个事件循环步内完成。
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from collections import Counter
from typing import Any, Callable

from src.config.constants import CacheDefaults
from src.config.settings import config
from src.core.logger import logger
from src.models.monitoring import CacheStats
from src.models.research import CacheEntry, ContentClass, RequesterContext


class ContextualCache:
    """上下文感知缓存（TTL + 智能失效 + LRU）"""

    def __init__(
        self,
        max_entries: int | None = None,
        min_ttl_seconds: float | None = None,
        base_ttl_seconds: dict[str, float] | None = None,
        fast_moving_domains: frozenset[str] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_entries = max(1, max_entries or config.cache_max_entries)
        self.min_ttl_seconds = (
            min_ttl_seconds if min_ttl_seconds is not None else config.cache_min_ttl_seconds
        )
        self.base_ttl_seconds = dict(base_ttl_seconds or CacheDefaults.BASE_TTL_SECONDS)
        self.fast_moving_domains = fast_moving_domains or CacheDefaults.FAST_MOVING_DOMAINS
        self._clock = clock

        self._entries: dict[str, CacheEntry[Any]] = {}
        self._total_requests = 0
        self._cache_hits = 0
        self._cleanup_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    # ==================== 核心方法 ====================

    def get(self, base_key: str, context: RequesterContext, content_class: str) -> Any | None:
        """
        读取缓存

        命中且未过期时更新访问信息并返回载荷；过期或触发智能失效时删除条目并返回 None。
        """
        self._total_requests += 1
        cache_key = self.build_key(base_key, context, content_class)

        entry = self._entries.get(cache_key)
        if entry is None:
            logger.debug("[CACHE] Miss: {} ({})", content_class, base_key[:60])
            return None

        now = self._clock()
        reason = self._invalidation_reason(entry, context, now)
        if reason:
            del self._entries[cache_key]
            logger.debug("[CACHE] 失效: {} ({}), 原因: {}", content_class, base_key[:60], reason)
            return None

        entry.access_count += 1
        entry.last_accessed = now
        self._cache_hits += 1

        logger.debug(
            "[CACHE] Hit: {} (age: {}min, reliability: {})",
            content_class,
            int(entry.age_seconds(now) // 60),
            entry.reliability,
        )
        return entry.payload

    def set(
        self,
        base_key: str,
        payload: Any,
        context: RequesterContext,
        content_class: str,
        sources: list[str] | None = None,
        reliability: float = 80,
    ) -> None:
        """写入缓存（总是成功）；插入新键且已满时淘汰一个最久未访问的条目"""
        cache_key = self.build_key(base_key, context, content_class)
        now = self._clock()
        ttl = self.calculate_ttl(content_class, context, reliability)

        if cache_key not in self._entries and len(self._entries) >= self.max_entries:
            self._evict_least_recently_used(now)

        self._entries[cache_key] = CacheEntry(
            payload=payload,
            created_at=now,
            last_accessed=now,
            context_hash=context.profile_hash(),
            content_class=content_class,
            reliability=reliability,
            expires_at=now + ttl,
            sources=list(sources or []),
        )
        logger.debug(
            "[CACHE] Stored {} (TTL: {}min, reliability: {})",
            content_class,
            round(ttl / 60),
            reliability,
        )

    def invalidate_by_context(self, context: RequesterContext) -> int:
        """删除由该画像产生的全部条目（画像变更时调用）"""
        profile_hash = context.profile_hash()
        keys = [k for k, e in self._entries.items() if e.context_hash == profile_hash]
        for key in keys:
            del self._entries[key]
        logger.info("[CACHE] 画像变更，失效 {} 个条目", len(keys))
        return len(keys)

    def invalidate_by_content_class(self, content_class: str) -> int:
        """删除指定内容类别的全部条目"""
        keys = [k for k, e in self._entries.items() if e.content_class == content_class]
        for key in keys:
            del self._entries[key]
        logger.info("[CACHE] 内容类别 {} 失效 {} 个条目", content_class, len(keys))
        return len(keys)

    # ==================== 键与 TTL ====================

    @staticmethod
    def build_key(base_key: str, context: RequesterContext, content_class: str) -> str:
        """上下文缓存键：SHA-256(查询|主领域|内容类别|平台(排序)|目标受众)"""
        factors = "|".join(
            [
                base_key,
                context.primary_domain or "general",
                content_class,
                ",".join(sorted(context.platforms)),
                context.target_audience or "general",
            ]
        )
        return hashlib.sha256(factors.encode("utf-8")).hexdigest()

    def is_fast_moving(self, context: RequesterContext) -> bool:
        return context.normalized_domain in self.fast_moving_domains

    def calculate_ttl(
        self, content_class: str, context: RequesterContext, reliability: float
    ) -> float:
        """
        计算有效 TTL（秒）

        基础 TTL × 快速领域(0.5) × 可信度(≥90: 1.5, ≥70: 1.0, 其他: 0.7) × 热点(0.8)，
        下限为 min_ttl_seconds。
        """
        ttl = self.base_ttl_seconds.get(
            content_class, self.base_ttl_seconds[ContentClass.GENERAL]
        )

        if self.is_fast_moving(context):
            ttl *= CacheDefaults.FAST_MOVING_MULTIPLIER

        if reliability >= CacheDefaults.HIGH_RELIABILITY:
            ttl *= CacheDefaults.HIGH_RELIABILITY_MULTIPLIER
        elif reliability >= CacheDefaults.MEDIUM_RELIABILITY:
            ttl *= CacheDefaults.MEDIUM_RELIABILITY_MULTIPLIER
        else:
            ttl *= CacheDefaults.LOW_RELIABILITY_MULTIPLIER

        if content_class == ContentClass.TRENDING:
            ttl *= CacheDefaults.TRENDING_MULTIPLIER

        return max(self.min_ttl_seconds, ttl)

    def _invalidation_reason(
        self, entry: CacheEntry[Any], context: RequesterContext, now: float
    ) -> str | None:
        """返回失效原因，未失效返回 None"""
        if entry.is_expired(now):
            return "expired"

        age = entry.age_seconds(now)

        # 快速领域的热点内容超过 3 小时即视为过期
        if (
            entry.content_class == ContentClass.TRENDING
            and self.is_fast_moving(context)
            and age > CacheDefaults.TRENDING_FAST_MOVING_MAX_AGE_SECONDS
        ):
            return "trending_fast_moving"

        # 低可信度内容超过 2 小时即视为过期
        if (
            entry.reliability < CacheDefaults.LOW_QUALITY_THRESHOLD
            and age > CacheDefaults.LOW_QUALITY_MAX_AGE_SECONDS
        ):
            return "low_reliability"

        return None

    # ==================== 淘汰与清理 ====================

    def _evict_least_recently_used(self, now: float) -> None:
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k].last_accessed)
        evicted = self._entries.pop(oldest_key)
        logger.info(
            "[CACHE] LRU 淘汰: {} (age: {}min)",
            evicted.content_class,
            int(evicted.age_seconds(now) // 60),
        )

    def cleanup_expired(self) -> int:
        """删除所有已过绝对过期时间的条目"""
        now = self._clock()
        keys = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.info("[CACHE] 清理过期条目 {} 个", len(keys))
        return len(keys)

    def start_background_cleanup(self, interval_seconds: float | None = None) -> None:
        """启动后台定期清理任务"""
        if self._cleanup_task is not None:
            return

        interval = interval_seconds or config.cache_cleanup_interval_seconds

        async def cleanup_loop() -> None:
            while True:
                try:
                    await asyncio.sleep(interval)
                    self.cleanup_expired()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.debug(f"[CACHE] 后台清理任务异常: {e}")

        try:
            self._cleanup_task = asyncio.create_task(cleanup_loop())
            logger.debug("[OK] 缓存后台清理任务已启动")
        except RuntimeError:
            # 没有事件循环时忽略
            pass

    async def close(self) -> None:
        """停止后台清理任务"""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

    def clear(self) -> None:
        self._entries.clear()
        self._total_requests = 0
        self._cache_hits = 0
        logger.info("[CACHE] 已清空全部缓存")

    # ==================== 统计 ====================

    def hit_rate(self) -> float:
        """命中率（0-1）"""
        if self._total_requests == 0:
            return 0.0
        return self._cache_hits / self._total_requests

    def get_stats(self) -> CacheStats:
        now = self._clock()
        total = len(self._entries)
        total_age = sum(e.age_seconds(now) for e in self._entries.values())
        class_counts = Counter(e.content_class for e in self._entries.values())

        hit_rate = self.hit_rate() * 100
        return CacheStats(
            total_entries=total,
            hit_rate=round(hit_rate, 2),
            miss_rate=round(100 - hit_rate, 2),
            average_age_minutes=round(total_age / total / 60) if total else 0,
            top_content_classes=[name for name, _ in class_counts.most_common(5)],
            storage_size_kb=total * CacheDefaults.ESTIMATED_ENTRY_KB,
        )

    def peek(self, base_key: str, context: RequesterContext, content_class: str) -> CacheEntry[Any] | None:
        """只读查看条目（不更新访问信息，不做失效判断）"""
        entry = self._entries.get(self.build_key(base_key, context, content_class))
        return entry
