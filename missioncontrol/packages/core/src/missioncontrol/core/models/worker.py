"""Worker Domain Model

worker_id 由调用方指定且稳定；心跳即注册（幂等 upsert）。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import WorkerStatus, WorkerType


class Worker(BaseModel):
    """Worker 数据模型"""

    worker_id: str = Field(description="稳定标识，调用方指定")
    status: WorkerStatus = Field(default=WorkerStatus.ONLINE, description="在线状态")
    worker_types: list[WorkerType] = Field(default_factory=list, description="可服务的 worker 类型")
    last_heartbeat_at: datetime | None = Field(default=None, description="最近心跳时间")
    created_at: datetime = Field(description="首次注册时间")
    updated_at: datetime = Field(description="更新时间")
    meta: str | None = Field(default=None, description="不透明元数据")
