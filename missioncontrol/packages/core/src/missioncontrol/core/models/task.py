"""Task Domain Model

任务是请求方提交的工作单元。task_id 不可变、全局唯一；
状态与优先级始终落在封闭词表内；终态任务保留作为历史，从不物理删除。
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .enums import Priority, TaskSource, TaskStatus


class Task(BaseModel):
    """Task 数据模型"""

    task_id: str = Field(description="唯一标识，UUID 格式")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    title: str = Field(description="任务标题")
    description: str | None = Field(default=None, description="自由文本描述")
    source: TaskSource = Field(description="创建来源：chat/ui/cli")
    requester: str | None = Field(default=None, description="请求者标识")
    status: TaskStatus = Field(default=TaskStatus.QUEUED, description="当前状态")
    priority: Priority = Field(default=Priority.NORMAL, description="优先级")
    tags: list[str] = Field(default_factory=list, description="有序去重标签")
    meta: str | None = Field(
        default=None,
        description="不透明元数据，core 不解析",
    )

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, tags: list[str]) -> list[str]:
        # 保序去重
        return list(dict.fromkeys(tags))

    @property
    def short_id(self) -> str:
        """展示用 8 位短 ID"""
        return self.task_id[:8]
