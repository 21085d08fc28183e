"""Mission Control 异常体系

三类业务错误对调用方可见：
- ValidationError: 输入非法或不在封闭词表内，原样返回给调用方，不自动重试
- NotFoundError: 任务/worker 不存在，或 ID 前缀无法唯一解析
- ConflictError: 与当前状态冲突（例如任务已有未释放的 claim）

存储层错误（aiosqlite.Error）不在此处包装，由事务封装回滚后原样抛出。
"""

from .config import SHORT_ID_LENGTH


def short_id(value: str) -> str:
    """截断为展示用短 ID，错误信息中不暴露完整标识"""
    return value[:SHORT_ID_LENGTH]


class MissionControlError(Exception):
    """Mission Control 基础异常"""

    code = "MISSION_CONTROL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(MissionControlError):
    """输入校验失败（空标题、非法状态/优先级/worker 类型等）"""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str) -> None:
        """
        Args:
            field: 非法的字段名
            message: 人类可读的错误描述
        """
        super().__init__(message)
        self.field = field


class NotFoundError(MissionControlError):
    """实体不存在或 ID 前缀有歧义"""

    code = "NOT_FOUND"

    def __init__(self, entity: str, ref: str, ambiguous: bool = False) -> None:
        """
        Args:
            entity: 实体类型（task / worker）
            ref: 调用方传入的 ID 或前缀（仅展示前 8 位）
            ambiguous: 是否因前缀匹配到多个任务而无法解析
        """
        if ambiguous:
            message = f"{entity} id prefix is ambiguous: {short_id(ref)}"
        else:
            message = f"{entity} not found: {short_id(ref)}"
        super().__init__(message)
        self.entity = entity
        self.ambiguous = ambiguous


class ConflictError(MissionControlError):
    """操作与当前状态冲突"""

    code = "CONFLICT"
