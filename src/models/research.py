"""
研究核心数据模型

定义研究层的核心数据结构：
- RequesterContext: 调用方画像（只读）
- CacheEntry: 上下文缓存条目
- ValidationResult: 单个来源 URL 的校验结果
- ProviderHealth: Provider 滚动健康度
- FallbackResult: 一次逻辑请求的最终结果
- TopicList / ContentIdeaList: 可增强载荷的标签联合
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, Literal, TypeVar, Union

if TYPE_CHECKING:
    from src.services.research.freshness import ResearchFreshness

T = TypeVar("T")


class ContentClass:
    """内容类别"""

    TRENDING = "trending"  # 热点话题
    CONTENT_IDEAS = "content-ideas"  # 内容创意
    RESEARCH = "research"  # 深度研究
    ANALYSIS = "analysis"  # 分析
    GENERAL = "general"  # 通用


class AuthorityTier(str, Enum):
    """来源权威等级"""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ProviderRole(str, Enum):
    """Provider 角色"""

    PRIMARY = "primary"  # 检索增强型主服务
    SECONDARY = "secondary"  # 生成型备用服务


@dataclass(frozen=True)
class RequesterContext:
    """
    调用方画像

    每次请求内不可变，仅用于派生缓存键和领域过滤，研究核心不会修改它。
    """

    primary_domain: str = ""
    keywords: tuple[str, ...] = ()
    trusted_sources: tuple[str, ...] = ()
    target_audience: str = ""
    platforms: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RequesterContext:
        """从调用方的画像字典创建（兼容 camelCase 键名）"""

        def _pick(*names: str) -> Any:
            for name in names:
                if name in data and data[name] is not None:
                    return data[name]
            return None

        return cls(
            primary_domain=str(_pick("primary_domain", "primaryDomain") or ""),
            keywords=tuple(_pick("keywords") or ()),
            trusted_sources=tuple(_pick("trusted_sources", "trustedSources") or ()),
            target_audience=str(_pick("target_audience", "targetAudience") or ""),
            platforms=tuple(_pick("platforms") or ()),
        )

    @property
    def normalized_domain(self) -> str:
        return self.primary_domain.strip().lower()

    def profile_hash(self) -> str:
        """画像哈希（用于按画像失效缓存）"""
        profile = json.dumps(
            {
                "primary_domain": self.primary_domain,
                "platforms": sorted(self.platforms),
                "target_audience": self.target_audience,
            },
            sort_keys=True,
        )
        return hashlib.md5(profile.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry(Generic[T]):
    """上下文缓存条目"""

    payload: T
    created_at: float
    last_accessed: float
    context_hash: str
    content_class: str
    reliability: float
    expires_at: float
    sources: list[str] = field(default_factory=list)
    access_count: int = 1

    def age_seconds(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class ValidationResult:
    """单个来源 URL 的校验结果"""

    url: str
    is_valid: bool = False
    is_accessible: bool = False
    reliability_score: int = 0
    authority: AuthorityTier = AuthorityTier.LOW
    reason: str | None = None
    checked_at: float = 0.0
    response_time_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """转换为字典（用于序列化）"""
        return {
            "url": self.url,
            "is_valid": self.is_valid,
            "is_accessible": self.is_accessible,
            "reliability_score": self.reliability_score,
            "authority": self.authority.value,
            "reason": self.reason,
            "checked_at": datetime.fromtimestamp(self.checked_at, tz=timezone.utc).isoformat(),
            "response_time_ms": self.response_time_ms,
        }


@dataclass
class ProviderHealth:
    """Provider 滚动健康度（指数加权移动平均）"""

    provider: ProviderRole
    avg_latency_ms: float = 0.0
    error_rate: float = 0.0
    available: bool = True
    last_updated: float = 0.0
    samples: int = 0

    def snapshot(self) -> ProviderHealth:
        return ProviderHealth(
            provider=self.provider,
            avg_latency_ms=self.avg_latency_ms,
            error_rate=self.error_rate,
            available=self.available,
            last_updated=self.last_updated,
            samples=self.samples,
        )


@dataclass
class FallbackResult(Generic[T]):
    """
    一次逻辑请求的最终结果

    ResearchService 会把它整体写入上下文缓存；缓存命中时返回 from_cache=True 的副本，
    并在 freshness 中给出按缓存写入时间计算的新鲜度。
    """

    data: T
    source: ProviderRole
    fallback_used: bool
    quality_score: int
    reliability: float
    fallback_reason: str | None = None
    preemptive: bool = False
    from_cache: bool = False
    freshness: ResearchFreshness | None = None


# ==================== 可增强载荷（标签联合）====================


@dataclass
class TopicList:
    """话题列表"""

    items: list[dict[str, Any]]
    kind: Literal["topics"] = "topics"


@dataclass
class ContentIdeaList:
    """内容创意列表"""

    items: list[dict[str, Any]]
    kind: Literal["content_ideas"] = "content_ideas"


ResearchPayload = Union[TopicList, ContentIdeaList]
