"""
来源可信度评分

对 Provider 返回的引用 URL 做可信度评估：
1. 黑名单 / 协议检查（不发起任何网络请求）
2. 权威域名表查找基础分与权威等级
3. HEAD 探测可达性（有超时）
4. HTTPS、响应时间、域名命名特征的加减分
5. 按 URL 缓存 24 小时，避免重复探测

校验失败不会抛出异常，统一编码为 is_valid=False 的结果。
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from collections import Counter, OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import urlparse

import httpx

from src.clients.http_client import HTTPClientPool
from src.config.constants import ReliabilityDefaults
from src.config.settings import config
from src.core.exceptions import ValidationFailure
from src.core.logger import logger
from src.models.monitoring import ReliabilitySummary
from src.models.research import AuthorityTier, ValidationResult

# 黑名单：占位/测试域名，以及不满足内容真实性要求的社交平台
BLACKLISTED_DOMAINS = frozenset(
    {
        "example.com",
        "test.com",
        "localhost",
        "placeholder.com",
        "127.0.0.1",
        "fake-site.com",
        "spam-source.com",
        "unreliable-news.com",
        "reddit.com",
        "facebook.com",
        "instagram.com",
        "tiktok.com",
        "pinterest.com",
    }
)

# 权威域名表：域名 -> (权威等级, 基础分)
AUTHORITY_TABLE: dict[str, tuple[AuthorityTier, int]] = {
    # 学术与研究机构
    "harvard.edu": (AuthorityTier.HIGH, 98),
    "mit.edu": (AuthorityTier.HIGH, 97),
    "stanford.edu": (AuthorityTier.HIGH, 96),
    "nature.com": (AuthorityTier.HIGH, 96),
    "hbr.org": (AuthorityTier.HIGH, 95),
    "science.org": (AuthorityTier.HIGH, 95),
    "sloanreview.mit.edu": (AuthorityTier.HIGH, 94),
    "fastcompany.com": (AuthorityTier.HIGH, 92),
    "mckinsey.com": (AuthorityTier.HIGH, 91),
    "ieee.org": (AuthorityTier.HIGH, 89),
    # 主流新闻与公共机构
    "reuters.com": (AuthorityTier.HIGH, 88),
    "who.int": (AuthorityTier.HIGH, 88),
    "bloomberg.com": (AuthorityTier.HIGH, 87),
    "cdc.gov": (AuthorityTier.HIGH, 87),
    "wsj.com": (AuthorityTier.HIGH, 86),
    "ft.com": (AuthorityTier.HIGH, 85),
    "techcrunch.com": (AuthorityTier.HIGH, 83),
    "wired.com": (AuthorityTier.HIGH, 82),
    # 中等权威
    "forbes.com": (AuthorityTier.MEDIUM, 78),
    "inc.com": (AuthorityTier.MEDIUM, 76),
    "entrepreneur.com": (AuthorityTier.MEDIUM, 75),
    "marketingland.com": (AuthorityTier.MEDIUM, 74),
    "adage.com": (AuthorityTier.MEDIUM, 73),
    "theverge.com": (AuthorityTier.MEDIUM, 72),
    "arstechnica.com": (AuthorityTier.MEDIUM, 71),
}


@dataclass
class ProbeOutcome:
    """一次可达性探测的结果"""

    accessible: bool
    latency_ms: float
    reason: str | None = None


ProbeFunc = Callable[[str], Awaitable[ProbeOutcome]]


def normalize_host(host: str) -> str:
    host = (host or "").strip().lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def is_blacklisted(host: str) -> bool:
    """黑名单域名及其任意子域名（如 old.reddit.com、m.facebook.com）"""
    return any(host == domain or host.endswith("." + domain) for domain in BLACKLISTED_DOMAINS)


def estimate_content_quality(host: str) -> int:
    """根据域名命名特征估算内容质量（0-100，基准 50）"""
    score = 50

    if host.endswith(".edu"):
        score += 30
    if host.endswith(".gov"):
        score += 25
    if host.endswith(".org"):
        score += 15

    if "research" in host:
        score += 10
    if "journal" in host:
        score += 15
    if "institute" in host:
        score += 10
    if "university" in host:
        score += 15

    if "blog" in host:
        score -= 10
    if "news" in host and host not in AUTHORITY_TABLE:
        score -= 5

    return max(0, min(100, score))


class ReliabilityScorer:
    """来源可信度评分器"""

    def __init__(
        self,
        probe: ProbeFunc | None = None,
        probe_timeout: float | None = None,
        cache_seconds: float | None = None,
        cache_max_entries: int | None = None,
        batch_size: int | None = None,
        batch_pause: float | None = None,
        min_valid_score: int | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._probe = probe or self._http_probe
        self.probe_timeout = probe_timeout or config.source_probe_timeout_seconds
        self.cache_seconds = (
            cache_seconds if cache_seconds is not None else config.source_validation_cache_seconds
        )
        self.cache_max_entries = max(
            1, cache_max_entries or config.source_validation_cache_max_entries
        )
        self.batch_size = max(1, batch_size or config.source_batch_size)
        self.batch_pause = batch_pause if batch_pause is not None else config.source_batch_pause_seconds
        self.min_valid_score = (
            min_valid_score if min_valid_score is not None else config.source_min_valid_score
        )
        self._clock = clock
        self._sleep = sleep

        # url 哈希 -> 结果，按最近使用排序
        self._cache: OrderedDict[str, ValidationResult] = OrderedDict()
        self._cache_lookups = 0
        self._cache_hits = 0

    # ==================== 单个校验 ====================

    async def validate(self, url: str, skip_cache: bool = False) -> ValidationResult:
        """校验单个 URL（带 24 小时结果缓存）"""
        url_hash = hashlib.md5(url.encode("utf-8")).hexdigest()

        if not skip_cache:
            self._cache_lookups += 1
            cached = self._cache.get(url_hash)
            if cached and self._clock() - cached.checked_at < self.cache_seconds:
                self._cache_hits += 1
                self._cache.move_to_end(url_hash)
                logger.debug("[SOURCE] 缓存命中: {}", self._host_of(url))
                return cached

        result = await self._perform_validation(url)
        self._store(url_hash, result)
        return result

    def _store(self, url_hash: str, result: ValidationResult) -> None:
        """写入缓存：先清理过期条目，超出上限时淘汰最久未使用的条目"""
        now = self._clock()
        expired = [k for k, v in self._cache.items() if now - v.checked_at >= self.cache_seconds]
        for key in expired:
            del self._cache[key]

        self._cache[url_hash] = result
        self._cache.move_to_end(url_hash)
        while len(self._cache) > self.cache_max_entries:
            self._cache.popitem(last=False)

    async def _perform_validation(self, url: str) -> ValidationResult:
        started = self._clock()
        result = ValidationResult(url=url, checked_at=started)

        try:
            host = self._check_url(url)
        except ValidationFailure as e:
            result.reason = e.reason
            logger.debug("[SOURCE] 拒绝 {}: {}", url, e.reason)
            return result

        authority = AUTHORITY_TABLE.get(host)
        if authority:
            result.authority, result.reliability_score = authority
        else:
            result.authority = AuthorityTier.MEDIUM
            result.reliability_score = ReliabilityDefaults.UNKNOWN_DOMAIN_SCORE

        outcome = await self._probe(url)
        result.is_accessible = outcome.accessible
        result.response_time_ms = outcome.latency_ms

        if not outcome.accessible:
            result.reason = outcome.reason or "Not accessible"
            result.reliability_score = max(
                0, result.reliability_score - ReliabilityDefaults.INACCESSIBLE_PENALTY
            )
            logger.debug("[SOURCE] 不可达 {}: {}", host, result.reason)
            return result

        result.reliability_score = self._final_score(
            result.reliability_score, url, host, outcome.latency_ms
        )
        result.is_valid = result.reliability_score >= self.min_valid_score

        logger.debug(
            "[SOURCE] {}: score={}, authority={}",
            host,
            result.reliability_score,
            result.authority.value,
        )
        return result

    @staticmethod
    def _check_url(url: str) -> str:
        """解析 URL 并做黑名单 / 协议检查，返回归一化后的主机名"""
        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationFailure(url, "Invalid URL format") from e

        host = normalize_host(parsed.hostname or "")
        if is_blacklisted(host):
            raise ValidationFailure(url, "Domain is blacklisted for content authenticity")
        if parsed.scheme not in ("http", "https"):
            raise ValidationFailure(url, "Invalid or insecure protocol")
        if not host:
            raise ValidationFailure(url, "Invalid URL format")
        return host

    @staticmethod
    def _final_score(base_score: int, url: str, host: str, latency_ms: float) -> int:
        score: float = base_score

        if url.lower().startswith("https://"):
            score += 5  # HTTPS
            score += 5  # 证书有效（以 HTTPS 近似）

        if latency_ms < ReliabilityDefaults.FAST_RESPONSE_MS:
            score += 3
        elif latency_ms > ReliabilityDefaults.SLOW_RESPONSE_MS:
            score -= 5

        score += (estimate_content_quality(host) - 50) * 0.2
        return max(0, min(100, round(score)))

    async def _http_probe(self, url: str) -> ProbeOutcome:
        """HEAD 请求探测可达性，超时或网络错误视为不可达"""
        started = self._clock()
        client = await HTTPClientPool.get_probe_client()
        try:
            response = await client.head(
                url,
                headers={"Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"},
                timeout=self.probe_timeout,
            )
        except httpx.TimeoutException:
            return ProbeOutcome(
                accessible=False,
                latency_ms=(self._clock() - started) * 1000,
                reason=f"Request timeout ({self.probe_timeout:g}s)",
            )
        except httpx.HTTPError as e:
            return ProbeOutcome(
                accessible=False,
                latency_ms=(self._clock() - started) * 1000,
                reason=str(e) or "Network error",
            )

        latency_ms = (self._clock() - started) * 1000
        if response.is_success:
            return ProbeOutcome(accessible=True, latency_ms=latency_ms)
        return ProbeOutcome(
            accessible=False,
            latency_ms=latency_ms,
            reason=f"HTTP {response.status_code} {response.reason_phrase}".strip(),
        )

    # ==================== 批量校验 ====================

    async def validate_batch(self, urls: list[str]) -> list[ValidationResult]:
        """
        批量校验

        每组 batch_size 个并发，组间暂停 batch_pause 秒；
        单个 URL 的意外错误不会中断整批。结果按分数降序排列。
        """
        logger.info("[SOURCE] 批量校验 {} 个来源", len(urls))
        results: list[ValidationResult] = []

        for start in range(0, len(urls), self.batch_size):
            batch = urls[start : start + self.batch_size]
            batch_results = await asyncio.gather(
                *(self.validate(url) for url in batch), return_exceptions=True
            )
            for url, outcome in zip(batch, batch_results):
                if isinstance(outcome, BaseException):
                    logger.error("[SOURCE] 校验失败 {}: {}", url, outcome)
                    results.append(
                        ValidationResult(
                            url=url,
                            reason="Validation failed",
                            checked_at=self._clock(),
                        )
                    )
                else:
                    results.append(outcome)

            if start + self.batch_size < len(urls):
                await self._sleep(self.batch_pause)

        results.sort(key=lambda r: r.reliability_score, reverse=True)
        valid_count = sum(1 for r in results if r.is_valid)
        logger.info("[SOURCE] 批量校验完成: {}/{} 有效", valid_count, len(urls))
        return results

    # ==================== 汇总 ====================

    @staticmethod
    def get_high_quality_sources(results: list[ValidationResult]) -> list[str]:
        """高质量来源：有效、权威等级非 low、分数 ≥ 70"""
        return [
            r.url
            for r in results
            if r.is_valid
            and r.authority != AuthorityTier.LOW
            and r.reliability_score >= ReliabilityDefaults.HIGH_QUALITY_SCORE
        ]

    @classmethod
    def get_reliability_summary(cls, results: list[ValidationResult]) -> ReliabilitySummary:
        valid = [r for r in results if r.is_valid]
        high_quality = [
            r for r in valid if r.reliability_score >= ReliabilityDefaults.HIGH_QUALITY_SCORE
        ]
        average = sum(r.reliability_score for r in valid) / len(valid) if valid else 0

        domain_counts = Counter(cls._host_of(r.url) for r in valid)
        return ReliabilitySummary(
            total_sources=len(results),
            valid_sources=len(valid),
            high_quality_sources=len(high_quality),
            average_score=round(average),
            top_domains=[domain for domain, _ in domain_counts.most_common(5)],
        )

    @staticmethod
    def _host_of(url: str) -> str:
        try:
            return urlparse(url).hostname or "unknown"
        except ValueError:
            return "unknown"

    # ==================== 缓存管理 ====================

    def clear_cache(self) -> None:
        self._cache.clear()
        self._cache_lookups = 0
        self._cache_hits = 0
        logger.info("[SOURCE] 校验缓存已清空")

    def get_cache_stats(self) -> dict[str, float]:
        hit_rate = self._cache_hits / self._cache_lookups if self._cache_lookups else 0.0
        return {"size": len(self._cache), "hit_rate": round(hit_rate, 4)}
