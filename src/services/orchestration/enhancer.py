"""
备用服务结果的质量保持处理

备用（生成型）服务没有实时检索能力，返回结果缺少来源与可信度信息。
这里对两种已知载荷做确定性增强：
- 话题列表：补充来源标记、增强时间、可信度、领域契合度
- 内容创意列表：额外补充按领域整理的参考来源（单独放在 supplementary_sources，
  标记为 "supplementary"，不会覆盖 Provider 自己给出的 sources）

其他形态的载荷原样返回。
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from src.config.constants import FallbackDefaults
from src.models.research import (
    ContentClass,
    ContentIdeaList,
    ProviderRole,
    RequesterContext,
    TopicList,
)

SUPPLEMENTARY_TAG = "supplementary"
ENHANCED_SOURCE = "secondary_enhanced"

OPERATION_TOPICS = "topics"
OPERATION_CONTENT_IDEAS = "content_ideas"

# 按领域整理的参考来源，未知领域使用 business
CURATED_SOURCES: dict[str, list[str]] = {
    "technology": ["https://techcrunch.com", "https://wired.com", "https://arstechnica.com"],
    "business": ["https://hbr.org", "https://fastcompany.com", "https://sloanreview.mit.edu"],
    "finance": ["https://bloomberg.com", "https://reuters.com", "https://wsj.com"],
    "healthcare": ["https://nejm.org", "https://who.int", "https://nature.com"],
    "marketing": ["https://marketingland.com", "https://adage.com", "https://hbr.org"],
}


def operation_kind_for(content_class: str) -> str | None:
    """由内容类别推导操作类型"""
    if content_class == ContentClass.TRENDING:
        return OPERATION_TOPICS
    if content_class == ContentClass.CONTENT_IDEAS:
        return OPERATION_CONTENT_IDEAS
    return None


def curated_sources_for(context: RequesterContext) -> list[str]:
    domain = context.normalized_domain or "business"
    return list(CURATED_SOURCES.get(domain, CURATED_SOURCES["business"]))


def calculate_expertise_alignment(item: dict[str, Any], context: RequesterContext) -> int:
    """标题或描述中出现主领域时为 85，否则 70"""
    domain = context.normalized_domain
    content = f"{item.get('title') or ''} {item.get('description') or ''}".lower()
    return 85 if domain and domain in content else 70


def calculate_content_quality(item: dict[str, Any]) -> int:
    score = 70
    title = item.get("title")
    description = item.get("description")
    key_points = item.get("key_points", item.get("keyPoints"))

    if isinstance(title, str) and len(title) > 5:
        score += 10
    if isinstance(description, str) and len(description) > 20:
        score += 10
    if isinstance(key_points, list) and key_points:
        score += 10
    return min(100, score)


def _enhance_topic(item: Any, context: RequesterContext, enhanced_at: str) -> Any:
    if not isinstance(item, dict):
        return item
    return {
        **item,
        "source": ENHANCED_SOURCE,
        "enhanced_at": enhanced_at,
        "reliability": FallbackDefaults.SECONDARY_RELIABILITY,
        "metadata": {
            **(item.get("metadata") or {}),
            "expertise_alignment": calculate_expertise_alignment(item, context),
            "quality_enhanced": True,
        },
    }


def _enhance_content_idea(
    item: Any, context: RequesterContext, enhanced_at: str, supplementary: list[str]
) -> Any:
    if not isinstance(item, dict):
        return item
    return {
        **item,
        "source": ENHANCED_SOURCE,
        "enhanced_at": enhanced_at,
        "reliability": FallbackDefaults.SECONDARY_RELIABILITY,
        "supplementary_sources": [{"url": url, "tag": SUPPLEMENTARY_TAG} for url in supplementary],
        "metadata": {
            **(item.get("metadata") or {}),
            "quality_score": calculate_content_quality(item),
            "expertise_alignment": calculate_expertise_alignment(item, context),
        },
    }


def enhance_topics(items: list[Any], context: RequesterContext, enhanced_at: str) -> list[Any]:
    return [_enhance_topic(item, context, enhanced_at) for item in items]


def enhance_content_ideas(
    items: list[Any], context: RequesterContext, enhanced_at: str
) -> list[Any]:
    supplementary = curated_sources_for(context)
    return [_enhance_content_idea(item, context, enhanced_at, supplementary) for item in items]


def enhance_result(
    data: Any,
    context: RequesterContext,
    operation_kind: str | None,
    now: datetime | None = None,
) -> Any:
    """
    对备用服务结果做质量保持增强

    带标签的载荷按标签分派；普通列表按 operation_kind 分派，返回同样形态的列表。
    """
    enhanced_at = (now or datetime.now(timezone.utc)).isoformat()

    if isinstance(data, TopicList):
        return TopicList(items=enhance_topics(data.items, context, enhanced_at))
    if isinstance(data, ContentIdeaList):
        return ContentIdeaList(items=enhance_content_ideas(data.items, context, enhanced_at))

    if isinstance(data, list):
        if operation_kind == OPERATION_TOPICS:
            return enhance_topics(data, context, enhanced_at)
        if operation_kind == OPERATION_CONTENT_IDEAS:
            return enhance_content_ideas(data, context, enhanced_at)

    return data


def payload_items(data: Any) -> list[Any] | None:
    """取出列表形态载荷的条目，非列表形态返回 None"""
    if isinstance(data, (TopicList, ContentIdeaList)):
        return data.items
    if isinstance(data, list):
        return data
    return None


def calculate_quality_score(data: Any, provider: ProviderRole) -> int:
    """
    结果质量分

    基础分：主服务 90，备用服务 75；条目 ≥3 加 5；每个条目都有标题和描述再加 5；上限 100。
    """
    if provider == ProviderRole.PRIMARY:
        score = FallbackDefaults.PRIMARY_QUALITY_BASE
    else:
        score = FallbackDefaults.SECONDARY_QUALITY_BASE

    items = payload_items(data)
    if items:
        if len(items) >= 3:
            score += 5
        if all(isinstance(i, dict) and i.get("title") and i.get("description") for i in items):
            score += 5

    return min(100, score)
