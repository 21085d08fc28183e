"""EventStore SQLite 实现

事件表 append-only：只允许插入，不允许更新或删除。
task_seq 同一 task 内严格单调递增，在写事务内分配。
append 只校验事件类型与操作者类型，从不因业务状态拒绝写入。
"""

import aiosqlite

from ..config import EVENT_LIST_LIMIT
from ..models.enums import ActorType, EventLevel, EventType, parse_enum
from ..models.event import Event
from .common import dump_json, from_iso, load_json, to_iso


class SqliteEventStore:
    """EventStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_event(self, event: Event) -> str:
        """追加事件（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。

        Returns:
            event_id

        Raises:
            ValidationError: 事件类型或操作者类型不在词表内
        """
        event_type = parse_enum(EventType, event.type, "type")
        actor_type = parse_enum(ActorType, event.actor_type, "actor_type")
        level = parse_enum(EventLevel, event.level, "level")

        await self._conn.execute(
            """
            INSERT INTO events (event_id, created_at, task_id, task_seq, actor_type,
                                actor_id, level, type, message, correlation_id, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.event_id,
                to_iso(event.created_at),
                event.task_id,
                event.task_seq,
                actor_type.value,
                event.actor_id,
                level.value,
                event_type.value,
                event.message,
                event.correlation_id,
                dump_json(event.payload) if event.payload is not None else None,
            ),
        )
        return event.event_id

    async def get_next_task_seq(self, task_id: str) -> int:
        """获取指定任务的下一个 task_seq（MAX+1）

        在事务内调用以确保原子性。
        """
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(task_seq), 0) FROM events WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else 0) + 1

    async def get_events_for_task(
        self,
        task_id: str,
        limit: int = EVENT_LIST_LIMIT,
    ) -> list[Event]:
        """查询指定任务的事件，最新在前"""
        cursor = await self._conn.execute(
            "SELECT * FROM events WHERE task_id = ? ORDER BY task_seq DESC LIMIT ?",
            (task_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def list_recent_events(self, limit: int = EVENT_LIST_LIMIT) -> list[Event]:
        """全局事件流（含 worker 级事件），最新在前"""
        cursor = await self._conn.execute(
            "SELECT * FROM events ORDER BY created_at DESC, event_id DESC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> Event:
        """将数据库行转换为 Event 模型"""
        return Event(
            event_id=row["event_id"],
            created_at=from_iso(row["created_at"]),
            task_id=row["task_id"],
            task_seq=row["task_seq"],
            actor_type=ActorType(row["actor_type"]),
            actor_id=row["actor_id"],
            level=EventLevel(row["level"]),
            type=EventType(row["type"]),
            message=row["message"],
            correlation_id=row["correlation_id"],
            payload=load_json(row["payload"]),
        )
