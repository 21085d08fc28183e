"""Mission Control Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .assignment import Assignment
from .claim import Claim
from .enums import (
    CONVENTIONAL_FLOW,
    TERMINAL_STATES,
    ActorType,
    AssignmentStatus,
    ClaimStatus,
    EventLevel,
    EventType,
    Priority,
    TaskSource,
    TaskStatus,
    WorkerStatus,
    WorkerType,
    is_terminal,
    parse_enum,
)
from .event import Event
from .payloads import (
    StatusChangedPayload,
    TaskAssignedPayload,
    TaskCanceledPayload,
    TaskClaimedPayload,
    TaskCreatedPayload,
    TaskReleasedPayload,
    TaskUpdatedPayload,
    WorkerHeartbeatPayload,
)
from .task import Task
from .views import (
    DailyCount,
    TaskDetail,
    TaskOverview,
    WorkerCompletedCount,
    WorkerOverview,
)
from .worker import Worker

__all__ = [
    # 枚举
    "TaskStatus",
    "Priority",
    "TaskSource",
    "WorkerType",
    "AssignmentStatus",
    "ClaimStatus",
    "WorkerStatus",
    "ActorType",
    "EventLevel",
    "EventType",
    # 状态机
    "TERMINAL_STATES",
    "CONVENTIONAL_FLOW",
    "is_terminal",
    "parse_enum",
    # 实体
    "Task",
    "Assignment",
    "Claim",
    "Worker",
    "Event",
    # Payloads
    "TaskCreatedPayload",
    "StatusChangedPayload",
    "TaskUpdatedPayload",
    "TaskAssignedPayload",
    "TaskClaimedPayload",
    "TaskReleasedPayload",
    "TaskCanceledPayload",
    "WorkerHeartbeatPayload",
    # 读模型
    "TaskOverview",
    "TaskDetail",
    "WorkerOverview",
    "WorkerCompletedCount",
    "DailyCount",
]
