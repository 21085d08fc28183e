"""Assignment Domain Model

路由声明：该任务应由某 worker 类型（可选指定 worker 实例）处理。
每个任务同一时刻至多一条 active assignment。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import ActorType, AssignmentStatus, WorkerType


class Assignment(BaseModel):
    """Assignment 数据模型"""

    assignment_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联的 Task ID")
    worker_type: WorkerType = Field(description="目标 worker 类型")
    worker_id: str | None = Field(default=None, description="可选的指定 worker")
    status: AssignmentStatus = Field(
        default=AssignmentStatus.ACTIVE,
        description="active/superseded/canceled",
    )
    assigned_by_actor_type: ActorType = Field(description="创建者类型")
    assigned_by_actor_id: str | None = Field(default=None, description="创建者 ID")
    note: str | None = Field(default=None, description="备注")
    meta: str | None = Field(default=None, description="不透明元数据")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
