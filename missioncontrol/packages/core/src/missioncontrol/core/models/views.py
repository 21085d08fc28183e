"""读模型行定义 -- dashboard / bot 查询结果

这些模型是纯投影，不能作为后续写操作的依据。
"""

from datetime import date, datetime

from pydantic import BaseModel, Field

from .assignment import Assignment
from .claim import Claim
from .enums import Priority, TaskStatus, WorkerStatus, WorkerType
from .event import Event
from .task import Task


class TaskOverview(BaseModel):
    """任务列表行：任务 + 当前 active assignment + 当前 open claim"""

    task_id: str
    created_at: datetime
    updated_at: datetime
    title: str
    description: str | None = None
    status: TaskStatus
    priority: Priority
    tags: list[str] = Field(default_factory=list)
    assigned_worker_type: WorkerType | None = None
    assigned_worker_id: str | None = None
    claimed_by_worker_id: str | None = None
    claimed_at: datetime | None = None
    started_at: datetime | None = Field(default=None, description="首次 claim 时间")
    finished_at: datetime | None = Field(default=None, description="最近一次释放时间")


class WorkerOverview(BaseModel):
    """worker 列表行：每个 worker 恰好一行，附带最近一条 open claim"""

    worker_id: str
    status: WorkerStatus
    worker_types: list[WorkerType] = Field(default_factory=list)
    last_heartbeat_at: datetime | None = None
    updated_at: datetime
    is_stale: bool = Field(default=False, description="读时判定，心跳超过阈值")
    active_claim_count: int = 0
    current_task_id: str | None = None
    current_task_claimed_at: datetime | None = None
    current_task_title: str | None = None
    current_task_status: TaskStatus | None = None
    current_task_updated_at: datetime | None = None


class WorkerCompletedCount(BaseModel):
    """按 claim worker 统计的已完成任务数"""

    worker_id: str
    completed_count: int


class DailyCount(BaseModel):
    """单日完成数（热力图格子）"""

    day: date
    count: int


class TaskDetail(BaseModel):
    """单任务详情：任务 + 当前分配/领取 + 历史 + 最近事件"""

    task: Task
    active_assignment: Assignment | None = None
    open_claim: Claim | None = None
    assignments: list[Assignment] = Field(default_factory=list)
    claims: list[Claim] = Field(default_factory=list)
    events: list[Event] = Field(default_factory=list, description="最近事件，新的在前")
