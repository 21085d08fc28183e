"""Event Payload 子类型

所有事件的结构化 payload 定义，写入时统一 model_dump(by_alias=True)。
"""

from pydantic import BaseModel, ConfigDict, Field

from .enums import Priority, TaskStatus, WorkerStatus, WorkerType


class TaskCreatedPayload(BaseModel):
    """task.created 事件 payload"""

    title: str
    priority: Priority
    description: str | None = None
    source: str


class StatusChangedPayload(BaseModel):
    """task.status_changed 事件 payload -- {from, to}"""

    model_config = ConfigDict(populate_by_name=True)

    from_status: TaskStatus = Field(alias="from")
    to_status: TaskStatus = Field(alias="to")


class TaskUpdatedPayload(BaseModel):
    """task.updated 事件 payload -- 单字段变更"""

    model_config = ConfigDict(populate_by_name=True)

    field: str
    from_value: str | None = Field(default=None, alias="from")
    to_value: str | None = Field(default=None, alias="to")


class TaskAssignedPayload(BaseModel):
    """task.assigned 事件 payload"""

    assignment_id: str
    worker_type: WorkerType
    worker_id: str | None = None
    superseded_assignment_id: str | None = Field(
        default=None,
        description="被本次分配替换的旧 active assignment",
    )


class TaskClaimedPayload(BaseModel):
    """task.claimed 事件 payload"""

    claim_id: str
    worker_id: str


class TaskReleasedPayload(BaseModel):
    """task.released 事件 payload

    requested_by 为调用方声明的 worker，仅作记录，不参与释放判定；
    worker_id 为实际持有该 claim 的 worker。
    """

    claim_id: str
    worker_id: str
    requested_by: str | None = None


class TaskCanceledPayload(BaseModel):
    """task.canceled 事件 payload"""

    model_config = ConfigDict(populate_by_name=True)

    from_status: TaskStatus = Field(alias="from")
    assignment_id: str | None = Field(default=None, description="随任务一并取消的 assignment")


class WorkerHeartbeatPayload(BaseModel):
    """worker.heartbeat 事件 payload"""

    worker_types: list[WorkerType]
    status: WorkerStatus
