"""Event Domain Model

事件表 append-only，不允许更新或删除。
event_id 使用 ULID 格式，时间有序。
task_seq 同一 task 内严格单调递增；worker/系统级事件 task_id 与 task_seq 为空。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import ActorType, EventLevel, EventType


class Event(BaseModel):
    """Event 数据模型

    事件表 append-only，不允许更新或删除。
    按 task_seq 排序的事件流即该任务的完整历史。
    """

    event_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    created_at: datetime = Field(description="事件时间戳")
    task_id: str | None = Field(default=None, description="关联的 Task ID，worker 级事件为空")
    task_seq: int | None = Field(default=None, description="任务内序号，严格单调递增")
    actor_type: ActorType = Field(description="操作者类型")
    actor_id: str | None = Field(default=None, description="操作者 ID")
    level: EventLevel = Field(default=EventLevel.INFO, description="事件级别")
    type: EventType = Field(description="事件类型")
    message: str | None = Field(default=None, description="人类可读描述")
    correlation_id: str | None = Field(default=None, description="关联标识")
    payload: dict[str, Any] | None = Field(default=None, description="结构化 payload")
