"""
研究核心 FastAPI 应用入口

启动时初始化进程级运行时并启动缓存与健康监控的后台清理，关闭时释放清理任务与共享 HTTP 客户端。
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.api.admin.monitoring import router as research_monitoring_router
from src.core.logger import logger
from src.services.research.runtime import get_runtime, shutdown_runtime


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = get_runtime()
    runtime.cache.start_background_cleanup()
    runtime.monitor.start_background_cleanup()
    logger.info("研究核心服务已启动")
    yield
    await shutdown_runtime()
    logger.info("研究核心服务已停止")


app = FastAPI(title="Research Core", version="0.1.0", lifespan=lifespan)
app.include_router(research_monitoring_router)
