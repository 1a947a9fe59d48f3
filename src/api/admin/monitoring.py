"""
研究核心运维监控 API
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.core.logger import logger
from src.models.monitoring import CacheStats, DashboardSnapshot, FallbackStats, SystemHealth
from src.services.research.runtime import ResearchRuntime, get_runtime

router = APIRouter(prefix="/api/admin/research", tags=["Research Monitoring"])


class CacheInvalidateRequest(BaseModel):
    content_class: str = Field(..., min_length=1, max_length=50, description="内容类别")


@router.get("/health", response_model=SystemHealth)
async def get_system_health(runtime: ResearchRuntime = Depends(get_runtime)) -> SystemHealth:
    """
    获取研究核心整体健康状态

    **返回字段**:
    - `overall`: 整体状态（healthy / degraded / critical）
    - `services`: 各服务状态（up / slow / down）
    - `last_updated`: 最后更新时间
    """
    return runtime.monitor.get_system_health()


@router.get("/dashboard", response_model=DashboardSnapshot)
async def get_dashboard(runtime: ResearchRuntime = Depends(get_runtime)) -> DashboardSnapshot:
    """
    获取运维看板数据

    **返回字段**:
    - `metrics`: 当前指标（响应时间、吞吐量、错误率、可用性）
    - `health`: 整体健康状态
    - `alerts`: 未解除的告警
    - `trends`: 最近 10 个指标点的趋势
    - `recommendations`: 优化建议
    - `providers`: 主 / 备 Provider 的滚动健康度
    """
    return runtime.monitor.get_dashboard_data(
        providers=runtime.orchestrator.get_service_health()
    )


@router.get("/cache/stats", response_model=CacheStats)
async def get_cache_stats(runtime: ResearchRuntime = Depends(get_runtime)) -> CacheStats:
    """
    获取上下文缓存统计

    **返回字段**:
    - `total_entries`: 条目总数
    - `hit_rate` / `miss_rate`: 命中率 / 未命中率（百分比）
    - `average_age_minutes`: 平均缓存时长（分钟）
    - `top_content_classes`: 条目最多的内容类别
    - `storage_size_kb`: 估算占用（KB）
    """
    return runtime.cache.get_stats()


@router.get("/fallback/stats", response_model=FallbackStats)
async def get_fallback_stats(runtime: ResearchRuntime = Depends(get_runtime)) -> FallbackStats:
    """获取主备降级统计"""
    return runtime.orchestrator.get_fallback_stats()


@router.post("/cache/invalidate")
async def invalidate_cache(
    req: CacheInvalidateRequest,
    runtime: ResearchRuntime = Depends(get_runtime),
) -> dict:
    """
    按内容类别失效缓存

    **请求体字段**:
    - `content_class`: 内容类别（如 trending / research）

    **返回字段**:
    - `invalidated`: 被删除的条目数
    """
    count = runtime.cache.invalidate_by_content_class(req.content_class)
    logger.info("[CACHE] 管理员按内容类别失效缓存: {} ({} 条)", req.content_class, count)
    return {"invalidated": count}


@router.post("/alerts/{alert_id}/resolve")
async def resolve_alert(alert_id: str, runtime: ResearchRuntime = Depends(get_runtime)) -> dict:
    """解除告警，告警不存在或已解除时返回 404"""
    if not runtime.monitor.resolve_alert(alert_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"告警 {alert_id} 不存在或已解除",
        )
    return {"success": True, "alert_id": alert_id}


@router.post("/fallback/reset")
async def reset_fallback_stats(runtime: ResearchRuntime = Depends(get_runtime)) -> dict:
    """重置降级统计与 Provider 滚动健康度"""
    runtime.orchestrator.reset_stats()
    return {"success": True}
