"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 中间件 + 异常映射 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from missioncontrol.core.config import get_db_path
from missioncontrol.core.store import create_store_group

from .errors import register_error_handlers
from .middleware.auth_mw import BasicAuthMiddleware, load_credentials
from .middleware.logging_config import setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .routes import health, stats, tasks, workers

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时打开数据库，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group
    log.info("gateway_started", db_path=db_path)

    yield

    if getattr(app.state, "store_group", None) is not None:
        await app.state.store_group.close()
    log.info("gateway_stopped")


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Mission Control Gateway",
        version="0.1.0",
        description="Mission Control 任务编排 API",
        lifespan=lifespan,
    )

    # 注册中间件（后注册的在外层：Logging 包住 Auth，401 也带 request_id）
    credentials = load_credentials()
    app.add_middleware(BasicAuthMiddleware, credentials=credentials)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    if credentials is None:
        log.warning("basic_auth_disabled")

    register_error_handlers(app)

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(workers.router, tags=["workers"])
    app.include_router(stats.router, tags=["stats"])
    app.include_router(health.router, tags=["health"])

    return app
