"""TaskStore SQLite 实现

tasks 表独占 task.status 字段。此处仅提供数据库操作，
不提交事务；跨实体一致性由 Facade 的事务保证。
"""

import aiosqlite

from ..config import get_list_limit
from ..exceptions import NotFoundError
from ..models.enums import Priority, TaskStatus, parse_enum
from ..models.task import Task
from .common import dump_json, from_iso, glob_prefix, load_json, to_iso, utc_now


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        await self._conn.execute(
            """
            INSERT INTO tasks (task_id, created_at, updated_at, title, description,
                               source, requester, status, priority, tags_json, meta)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                to_iso(task.created_at),
                to_iso(task.updated_at),
                task.title,
                task.description,
                task.source.value,
                task.requester,
                task.status.value,
                task.priority.value,
                dump_json(task.tags),
                task.meta,
            ),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 精确查询任务"""
        cursor = await self._conn.execute(
            "SELECT * FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def require_task(self, task_id: str) -> Task:
        """查询任务，不存在时抛出 NotFoundError"""
        task = await self.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    async def find_by_id_or_prefix(self, token: str) -> Task | None:
        """按完整 ID 或唯一前缀查找任务

        精确匹配优先；否则做前缀匹配，仅当恰好一个任务匹配时返回。
        零个或多个匹配均返回 None，由调用方提示消歧。
        两次查询应在同一事务内执行，避免中间插入新任务。
        """
        token = token.strip()
        if not token:
            return None

        exact = await self.get_task(token)
        if exact is not None:
            return exact

        # 只取两行即可判定是否唯一
        cursor = await self._conn.execute(
            "SELECT * FROM tasks WHERE task_id GLOB ? LIMIT 2",
            (glob_prefix(token),),
        )
        rows = await cursor.fetchall()
        if len(rows) != 1:
            return None
        return self._row_to_task(rows[0])

    async def count_prefix_matches(self, token: str) -> int:
        """统计匹配前缀的任务数（用于区分 not found 与 ambiguous）"""
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM tasks WHERE task_id GLOB ?",
            (glob_prefix(token.strip()),),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def resolve(self, token: str) -> Task:
        """解析任务引用，失败时区分不存在与前缀歧义

        Raises:
            NotFoundError: 无匹配，或前缀匹配到多个任务（ambiguous=True）
        """
        task = await self.find_by_id_or_prefix(token)
        if task is not None:
            return task
        ambiguous = bool(token.strip()) and await self.count_prefix_matches(token) > 1
        raise NotFoundError("task", token, ambiguous=ambiguous)

    async def list_tasks(
        self,
        status: TaskStatus | str | None = None,
        limit: int | None = None,
    ) -> list[Task]:
        """查询任务列表，支持按状态筛选，按 updated_at 倒序"""
        limit = limit or get_list_limit()
        if status:
            status = parse_enum(TaskStatus, status, "status")
            cursor = await self._conn.execute(
                "SELECT * FROM tasks WHERE status = ? ORDER BY updated_at DESC LIMIT ?",
                (status.value, limit),
            )
        else:
            cursor = await self._conn.execute(
                "SELECT * FROM tasks ORDER BY updated_at DESC LIMIT ?",
                (limit,),
            )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def set_status(
        self,
        task_id: str,
        new_status: TaskStatus | str,
    ) -> tuple[TaskStatus, TaskStatus]:
        """覆盖写入任务状态，不校验流转表

        Returns:
            (from_status, to_status)

        Raises:
            ValidationError: 状态不在词表内
            NotFoundError: 任务不存在
        """
        to_status = parse_enum(TaskStatus, new_status, "status")
        task = await self.require_task(task_id)
        await self._conn.execute(
            "UPDATE tasks SET status = ?, updated_at = ? WHERE task_id = ?",
            (to_status.value, to_iso(utc_now()), task_id),
        )
        return task.status, to_status

    async def set_priority(
        self,
        task_id: str,
        priority: Priority | str,
    ) -> tuple[Priority, Priority]:
        """更新优先级

        Returns:
            (from_priority, to_priority)
        """
        to_priority = parse_enum(Priority, priority, "priority")
        task = await self.require_task(task_id)
        await self._conn.execute(
            "UPDATE tasks SET priority = ?, updated_at = ? WHERE task_id = ?",
            (to_priority.value, to_iso(utc_now()), task_id),
        )
        return task.priority, to_priority

    async def set_meta(self, task_id: str, meta: str | None) -> str | None:
        """覆盖写入不透明元数据，返回旧值"""
        task = await self.require_task(task_id)
        await self._conn.execute(
            "UPDATE tasks SET meta = ?, updated_at = ? WHERE task_id = ?",
            (meta, to_iso(utc_now()), task_id),
        )
        return task.meta

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row["task_id"],
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
            title=row["title"],
            description=row["description"],
            source=row["source"],
            requester=row["requester"],
            status=row["status"],
            priority=row["priority"],
            tags=load_json(row["tags_json"], []),
            meta=row["meta"],
        )
