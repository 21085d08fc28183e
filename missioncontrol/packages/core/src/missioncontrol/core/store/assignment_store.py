"""AssignmentStore SQLite 实现

task_assignments 表独占 assignment.status 字段。
assign 先把旧 active 标记为 superseded 再插入新 active，
两步必须处于调用方的同一事务内，读者不会观察到零条或两条 active。
"""

import aiosqlite
from ulid import ULID

from ..exceptions import NotFoundError
from ..models.assignment import Assignment
from ..models.enums import ActorType, AssignmentStatus, WorkerType, parse_enum
from .common import from_iso, to_iso, utc_now


class SqliteAssignmentStore:
    """AssignmentStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def assign(
        self,
        task_id: str,
        worker_type: WorkerType | str,
        worker_id: str | None = None,
        *,
        assigned_by: tuple[ActorType, str | None],
        note: str | None = None,
        meta: str | None = None,
    ) -> tuple[Assignment, str | None]:
        """将任务分配给 worker 类型（可选指定 worker 实例）

        Returns:
            (新 assignment, 被替换的旧 assignment_id 或 None)

        Raises:
            ValidationError: worker_type 不在词表内
            NotFoundError: 任务或指定的 worker 不存在
        """
        worker_type = parse_enum(WorkerType, worker_type, "worker_type")
        await self._require_exists("tasks", "task_id", task_id, "task")
        if worker_id is not None:
            await self._require_exists("workers", "worker_id", worker_id, "worker")

        now = to_iso(utc_now())
        previous = await self.get_active(task_id)
        if previous is not None:
            await self._conn.execute(
                """
                UPDATE task_assignments
                SET status = ?, updated_at = ?
                WHERE task_id = ? AND status = ?
                """,
                (
                    AssignmentStatus.SUPERSEDED.value,
                    now,
                    task_id,
                    AssignmentStatus.ACTIVE.value,
                ),
            )

        actor_type, actor_id = assigned_by
        assignment_id = str(ULID())
        await self._conn.execute(
            """
            INSERT INTO task_assignments (assignment_id, task_id, worker_type, worker_id,
                                          status, assigned_by_actor_type, assigned_by_actor_id,
                                          note, meta, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                assignment_id,
                task_id,
                worker_type.value,
                worker_id,
                AssignmentStatus.ACTIVE.value,
                ActorType(actor_type).value,
                actor_id,
                note,
                meta,
                now,
                now,
            ),
        )
        assignment = await self.get_active(task_id)
        return assignment, previous.assignment_id if previous else None

    async def cancel(self, task_id: str) -> Assignment | None:
        """取消任务当前的 active assignment，没有则为 no-op

        Returns:
            被取消的 assignment，或 None
        """
        active = await self.get_active(task_id)
        if active is None:
            return None
        now = utc_now()
        await self._conn.execute(
            "UPDATE task_assignments SET status = ?, updated_at = ? WHERE assignment_id = ?",
            (AssignmentStatus.CANCELED.value, to_iso(now), active.assignment_id),
        )
        return active.model_copy(
            update={"status": AssignmentStatus.CANCELED, "updated_at": now}
        )

    async def get_active(self, task_id: str) -> Assignment | None:
        """查询任务当前的 active assignment"""
        cursor = await self._conn.execute(
            "SELECT * FROM task_assignments WHERE task_id = ? AND status = ?",
            (task_id, AssignmentStatus.ACTIVE.value),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_assignment(row)

    async def list_for_task(self, task_id: str) -> list[Assignment]:
        """查询任务的全部 assignment 历史，按创建时间正序"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM task_assignments
            WHERE task_id = ?
            ORDER BY created_at ASC, assignment_id ASC
            """,
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_assignment(row) for row in rows]

    async def _require_exists(self, table: str, column: str, value: str, entity: str) -> None:
        cursor = await self._conn.execute(
            f"SELECT 1 FROM {table} WHERE {column} = ?",
            (value,),
        )
        if await cursor.fetchone() is None:
            raise NotFoundError(entity, value)

    @staticmethod
    def _row_to_assignment(row: aiosqlite.Row) -> Assignment:
        """将数据库行转换为 Assignment 模型"""
        return Assignment(
            assignment_id=row["assignment_id"],
            task_id=row["task_id"],
            worker_type=row["worker_type"],
            worker_id=row["worker_id"],
            status=row["status"],
            assigned_by_actor_type=row["assigned_by_actor_type"],
            assigned_by_actor_id=row["assigned_by_actor_id"],
            note=row["note"],
            meta=row["meta"],
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
        )
