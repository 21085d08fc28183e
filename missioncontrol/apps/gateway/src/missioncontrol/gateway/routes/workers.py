"""worker 路由

GET  /api/workers                   worker 列表（每个 worker 一行，附当前任务与 stale 标记）
POST /api/workers/{worker_id}/heartbeat   心跳（兼注册）
"""

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from missioncontrol.core.models import WorkerOverview
from missioncontrol.core.orchestrator import Actor, TaskOrchestrator
from missioncontrol.core.read_models import list_worker_overview
from missioncontrol.core.store import StoreGroup
from missioncontrol.core.store.common import dump_json
from pydantic import BaseModel, Field

from ..deps import get_store_group

router = APIRouter()


class WorkerListResponse(BaseModel):
    workers: list[WorkerOverview]


class HeartbeatRequest(BaseModel):
    """心跳请求；meta 为任意 JSON 对象，按不透明字符串落库"""

    worker_types: list[str] = Field(default_factory=list)
    status: str = Field(default="online")
    meta: dict[str, Any] | None = None


@router.get("/api/workers", response_model=WorkerListResponse)
async def list_workers(
    limit: int | None = Query(default=None, ge=1, le=1000),
    store_group: StoreGroup = Depends(get_store_group),
):
    """按最近活跃倒序"""
    async with store_group.transaction(immediate=False) as conn:
        rows = await list_worker_overview(conn, limit=limit)
    return WorkerListResponse(workers=rows)


@router.post("/api/workers/{worker_id}/heartbeat")
async def heartbeat(
    worker_id: str,
    request: Request,
    body: HeartbeatRequest | None = None,
    store_group: StoreGroup = Depends(get_store_group),
):
    """心跳事件的 actor 为 worker 本身"""
    body = body or HeartbeatRequest()
    orchestrator = TaskOrchestrator(
        store_group,
        Actor(actor_type="worker", actor_id=worker_id),
        correlation_id=getattr(request.state, "request_id", None),
    )
    worker = await orchestrator.heartbeat(
        worker_id,
        body.worker_types,
        body.status,
        dump_json(body.meta) if body.meta is not None else None,
    )
    return {"ok": True, "worker": worker}
