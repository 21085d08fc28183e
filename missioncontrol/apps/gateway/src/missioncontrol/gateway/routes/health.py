"""健康检查路由

GET /health: Liveness 检查，永远返回 200，不经过 Basic 认证。
GET /ready: Readiness 检查，包含 SQLite 连通性、WAL 模式、磁盘空间。
"""

import shutil
from pathlib import Path

import structlog
from fastapi import APIRouter, Request
from missioncontrol.core.config import get_db_path
from missioncontrol.core.store.sqlite_init import verify_wal_mode
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. sqlite: 数据库连通性
    2. wal_mode: journal_mode 是否为 WAL
    3. disk_space_mb: 数据库所在分区剩余空间
    """
    checks = {}
    all_ok = True

    # 1. SQLite 连通性检查
    store_group = request.app.state.store_group
    try:
        async with store_group.transaction(immediate=False) as conn:
            cursor = await conn.execute("SELECT 1")
            await cursor.fetchone()
        checks["sqlite"] = "ok"
    except Exception as e:
        log.warning("ready_check_failed", check="sqlite", error=str(e))
        checks["sqlite"] = "unavailable"
        all_ok = False

    # 2. WAL 模式
    try:
        if await verify_wal_mode(store_group.conn):
            checks["wal_mode"] = "ok"
        else:
            checks["wal_mode"] = "not_wal"
            all_ok = False
    except Exception as e:
        log.warning("ready_check_failed", check="wal_mode", error=str(e))
        checks["wal_mode"] = "unavailable"
        all_ok = False

    # 3. 磁盘空间检查
    try:
        db_dir = Path(get_db_path()).resolve().parent
        disk_usage = shutil.disk_usage(db_dir if db_dir.exists() else "/")
        checks["disk_space_mb"] = disk_usage.free // (1024 * 1024)
    except OSError:
        checks["disk_space_mb"] = 0
        all_ok = False

    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ready" if all_ok else "not_ready",
            "checks": checks,
        },
    )
