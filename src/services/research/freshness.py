"""
研究结果新鲜度指标
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

FreshnessLevel = Literal["fresh", "recent", "stale", "expired"]
QualityImpact = Literal["none", "minimal", "moderate", "significant"]

# (fresh, recent, stale) 小时阈值
FRESHNESS_THRESHOLDS: dict[str, tuple[float, float, float]] = {
    "trends": (6, 24, 72),
    "general": (24, 72, 168),
}


@dataclass(frozen=True)
class ResearchFreshness:
    level: FreshnessLevel
    age: str
    age_hours: float
    recommend_refresh: bool
    source_timestamp: datetime
    quality_impact: QualityImpact


def format_age(hours: float) -> str:
    if hours < 1:
        return f"{round(hours * 60)} minutes ago"
    if hours < 24:
        return f"{round(hours)} hours ago"
    days = round(hours / 24)
    return f"{days} day{'s' if days > 1 else ''} ago"


def calculate_freshness(
    source_timestamp: datetime,
    content_kind: str = "general",
    now: datetime | None = None,
) -> ResearchFreshness:
    """按内容类型（trends / general）评估研究结果的新鲜度"""
    now = now or datetime.now(timezone.utc)
    if source_timestamp.tzinfo is None:
        source_timestamp = source_timestamp.replace(tzinfo=timezone.utc)

    age_hours = max(0.0, (now - source_timestamp).total_seconds() / 3600)
    fresh, recent, stale = FRESHNESS_THRESHOLDS.get(content_kind, FRESHNESS_THRESHOLDS["general"])

    level: FreshnessLevel
    impact: QualityImpact
    if age_hours <= fresh:
        level, impact = "fresh", "none"
    elif age_hours <= recent:
        level, impact = "recent", "minimal"
    elif age_hours <= stale:
        level, impact = "stale", "moderate"
    else:
        level, impact = "expired", "significant"

    return ResearchFreshness(
        level=level,
        age=format_age(age_hours),
        age_hours=age_hours,
        recommend_refresh=level in ("stale", "expired"),
        source_timestamp=source_timestamp,
        quality_impact=impact,
    )
