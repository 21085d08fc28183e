"""枚举定义 -- 所有封闭词表

包含 TaskStatus 状态集合、Priority、TaskSource、WorkerType、AssignmentStatus、
ClaimStatus、WorkerStatus、ActorType、EventLevel、EventType 枚举，
以及 TERMINAL_STATES 终态集合和 parse_enum 校验辅助函数。

状态机不设流转表：任意状态之间可以直接覆盖写入，约定流程
queued -> (assigned) -> claimed -> running -> (blocked | needs_review)* -> done|failed
由 Facade 组合操作表达；cancel 可从任意非终态到达。
"""

from enum import StrEnum
from typing import TypeVar

from ..exceptions import ValidationError


class TaskStatus(StrEnum):
    """Task 状态"""

    # 初始状态
    QUEUED = "queued"

    # 处理中
    CLAIMED = "claimed"
    RUNNING = "running"
    BLOCKED = "blocked"
    NEEDS_REVIEW = "needs_review"

    # 终态
    DONE = "done"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATES: frozenset[TaskStatus] = frozenset(
    {
        TaskStatus.DONE,
        TaskStatus.FAILED,
        TaskStatus.CANCELED,
    }
)

# 约定流程（仅供调用方参考，Store 层不强制）
CONVENTIONAL_FLOW: tuple[TaskStatus, ...] = (
    TaskStatus.QUEUED,
    TaskStatus.CLAIMED,
    TaskStatus.RUNNING,
    TaskStatus.DONE,
)


class Priority(StrEnum):
    """任务优先级"""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class TaskSource(StrEnum):
    """任务来源（创建方）"""

    CHAT = "chat"
    UI = "ui"
    CLI = "cli"


class WorkerType(StrEnum):
    """Worker 能力类型"""

    CODER = "coder"
    RESEARCHER = "researcher"
    SEO = "seo"
    DESIGNER = "designer"
    TESTER = "tester"


class AssignmentStatus(StrEnum):
    """Assignment 状态 -- 每个任务至多一条 active"""

    ACTIVE = "active"
    SUPERSEDED = "superseded"
    CANCELED = "canceled"


class ClaimStatus(StrEnum):
    """Claim 状态 -- released_at 为空即为 open"""

    CLAIMED = "claimed"
    RELEASED = "released"


class WorkerStatus(StrEnum):
    """Worker 在线状态"""

    ONLINE = "online"
    OFFLINE = "offline"
    DRAINING = "draining"


class ActorType(StrEnum):
    """操作者类型"""

    ORCHESTRATOR = "orchestrator"
    WORKER = "worker"
    UI = "ui"


class EventLevel(StrEnum):
    """事件级别"""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EventType(StrEnum):
    """事件类型（封闭词表）"""

    TASK_CREATED = "task.created"
    TASK_UPDATED = "task.updated"
    TASK_STATUS_CHANGED = "task.status_changed"
    TASK_ASSIGNED = "task.assigned"
    TASK_CLAIMED = "task.claimed"
    TASK_RELEASED = "task.released"
    TASK_CANCELED = "task.canceled"
    WORKER_HEARTBEAT = "worker.heartbeat"


E = TypeVar("E", bound=StrEnum)


def parse_enum(enum_cls: type[E], value: object, field: str) -> E:
    """将外部输入解析为封闭词表枚举值

    Args:
        enum_cls: 目标枚举类型
        value: 调用方传入的值
        field: 字段名（用于错误信息）

    Raises:
        ValidationError: 值不在词表内
    """
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ",".join(member.value for member in enum_cls)
        raise ValidationError(
            field, f"invalid {field} (expected one of: {allowed})"
        ) from None


def is_terminal(status: TaskStatus) -> bool:
    """判断状态是否为终态"""
    return status in TERMINAL_STATES
