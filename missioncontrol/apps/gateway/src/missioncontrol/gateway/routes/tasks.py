"""任务路由 -- dashboard 读写接口

GET  /api/tasks                     任务列表（含当前分配/领取），支持 status 筛选
POST /api/tasks                     创建任务（可选直接分配）
GET  /api/tasks/{ref}               任务详情（含 assignment/claim 历史与最近事件）
POST /api/tasks/{ref}/status        覆盖写入状态
POST /api/tasks/{ref}/priority      修改优先级
POST /api/tasks/{ref}/assign        分配 / 重新分配
POST /api/tasks/{ref}/claim         worker 领取
POST /api/tasks/{ref}/release       释放 open claim
POST /api/tasks/{ref}/cancel        取消（终态任务 409）
POST /api/tasks/{ref}/complete      释放 claim + 写入最终状态

{ref} 为完整任务 ID 或唯一前缀。
"""

from fastapi import APIRouter, Depends, Query
from missioncontrol.core.config import EVENT_LIST_LIMIT
from missioncontrol.core.models import TaskDetail, TaskOverview
from missioncontrol.core.orchestrator import TaskOrchestrator
from missioncontrol.core.read_models import list_task_overview, task_detail
from missioncontrol.core.store import StoreGroup
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_orchestrator, get_store_group

router = APIRouter()


class TaskListResponse(BaseModel):
    """任务列表响应"""

    tasks: list[TaskOverview]


class CreateTaskRequest(BaseModel):
    """创建任务请求；给出 worker_type 时同事务内完成分配"""

    title: str = Field(description="任务标题，不能为空")
    description: str | None = None
    priority: str = Field(default="normal")
    tags: list[str] = Field(default_factory=list)
    requester: str | None = None
    meta: str | None = None
    worker_type: str | None = None
    worker_id: str | None = None
    note: str | None = None


class StatusRequest(BaseModel):
    status: str


class PriorityRequest(BaseModel):
    priority: str


class AssignRequest(BaseModel):
    worker_type: str
    worker_id: str | None = None
    note: str | None = None


class ClaimRequest(BaseModel):
    worker_id: str


class ReleaseRequest(BaseModel):
    worker_id: str | None = None


class CompleteRequest(BaseModel):
    worker_id: str
    status: str = Field(default="done")


@router.get("/api/tasks", response_model=TaskListResponse)
async def list_tasks(
    status: str | None = Query(default=None, description="按状态筛选"),
    limit: int | None = Query(default=None, ge=1, le=1000),
    store_group: StoreGroup = Depends(get_store_group),
):
    """任务列表，按 updated_at 倒序"""
    async with store_group.transaction(immediate=False) as conn:
        rows = await list_task_overview(conn, status=status, limit=limit)
    return TaskListResponse(tasks=rows)


@router.post("/api/tasks", status_code=201)
async def create_task(
    body: CreateTaskRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
):
    """创建任务，来源记为 ui"""
    fields = {
        "title": body.title,
        "description": body.description,
        "priority": body.priority,
        "tags": body.tags,
        "requester": body.requester,
        "meta": body.meta,
    }
    if body.worker_type:
        task, assignment = await orchestrator.create_and_assign(
            worker_type=body.worker_type,
            worker_id=body.worker_id,
            note=body.note,
            **fields,
        )
        return {"task": task, "assignment": assignment}
    task = await orchestrator.create_task(**fields)
    return {"task": task, "assignment": None}


@router.get("/api/tasks/{task_ref}", response_model=TaskDetail)
async def get_task_detail(
    task_ref: str,
    event_limit: int = Query(default=EVENT_LIST_LIMIT, ge=1, le=1000),
    store_group: StoreGroup = Depends(get_store_group),
):
    """任务详情"""
    return await task_detail(store_group, task_ref, event_limit=event_limit)


@router.post("/api/tasks/{task_ref}/status")
async def set_status(
    task_ref: str,
    body: StatusRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
):
    from_status, to_status = await orchestrator.change_status(task_ref, body.status)
    return {"ok": True, "from": from_status, "to": to_status}


@router.post("/api/tasks/{task_ref}/priority")
async def set_priority(
    task_ref: str,
    body: PriorityRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
):
    from_priority, to_priority = await orchestrator.change_priority(task_ref, body.priority)
    return {"ok": True, "from": from_priority, "to": to_priority}


@router.post("/api/tasks/{task_ref}/assign")
async def assign_task(
    task_ref: str,
    body: AssignRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
):
    assignment = await orchestrator.assign(
        task_ref, body.worker_type, body.worker_id, note=body.note
    )
    return {"assignment": assignment}


@router.post("/api/tasks/{task_ref}/claim")
async def claim_task(
    task_ref: str,
    body: ClaimRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
):
    """已有 open claim 时返回 409"""
    claim = await orchestrator.claim(task_ref, body.worker_id)
    return {"claim": claim}


@router.post("/api/tasks/{task_ref}/release")
async def release_task(
    task_ref: str,
    body: ReleaseRequest | None = None,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
):
    """没有 open claim 时返回 released=false，不视为错误"""
    worker_id = body.worker_id if body else None
    released = await orchestrator.release(task_ref, worker_id)
    return {"released": released is not None, "claim": released}


@router.post("/api/tasks/{task_ref}/cancel")
async def cancel_task(
    task_ref: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
):
    """取消非终态任务；终态任务 409"""
    task = await orchestrator.cancel(task_ref)
    return JSONResponse(
        status_code=200,
        content={"task_id": task.task_id, "status": task.status.value},
    )


@router.post("/api/tasks/{task_ref}/complete")
async def complete_task(
    task_ref: str,
    body: CompleteRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
):
    completed = await orchestrator.complete_task(body.worker_id, task_ref, body.status)
    return {
        "ok": True,
        "task_id": completed.task.task_id,
        "from": completed.from_status,
        "to": completed.to_status,
        "released": completed.released is not None,
    }
