"""Claim Domain Model

worker 对任务的独占执行权。released_at 为空即为 open claim，
每个任务同一时刻至多一条 open claim。claim 从不删除，
claimed_at -> released_at 区间即任务的执行历史。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import ClaimStatus


class Claim(BaseModel):
    """Claim 数据模型"""

    claim_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联的 Task ID")
    worker_id: str = Field(description="持有者 worker ID")
    status: ClaimStatus = Field(default=ClaimStatus.CLAIMED, description="claimed/released")
    claimed_at: datetime = Field(description="领取时间")
    released_at: datetime | None = Field(default=None, description="释放时间，open 时为空")
    meta: str | None = Field(default=None, description="不透明元数据")

    @property
    def is_open(self) -> bool:
        return self.released_at is None
