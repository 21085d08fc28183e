"""统计路由

GET /api/stats
    by_status            八个状态的任务数（无任务补 0）
    completed_by_worker  各 worker 领取过且已到终态的任务数
    daily                ?worker= 时附带该 worker 滚动窗口内的每日完成数
"""

from fastapi import APIRouter, Depends, Query
from missioncontrol.core.config import get_activity_window_days
from missioncontrol.core.models import TERMINAL_STATES
from missioncontrol.core.read_models import (
    completed_by_worker,
    count_tasks_by_status,
    worker_daily_completions,
)
from missioncontrol.core.store import StoreGroup

from ..deps import get_store_group

router = APIRouter()


@router.get("/api/stats")
async def get_stats(
    worker: str | None = Query(default=None, description="热力图对应的 worker"),
    days: int | None = Query(default=None, ge=1, le=366),
    store_group: StoreGroup = Depends(get_store_group),
):
    days = days or get_activity_window_days()
    async with store_group.transaction(immediate=False) as conn:
        result = {
            "by_status": await count_tasks_by_status(conn),
            "completed_by_worker": await completed_by_worker(conn),
            "completed_statuses": sorted(status.value for status in TERMINAL_STATES),
        }
        if worker:
            result["worker"] = worker
            result["days"] = days
            result["daily"] = await worker_daily_completions(conn, worker, days=days)
    return result
