"""WorkerStore SQLite 实现 -- worker 注册表

心跳即注册：按 worker_id 幂等 upsert，刷新 last_heartbeat_at。
worker 从不删除；stale 与否是读时策略，不落库。
"""

from collections.abc import Iterable

import aiosqlite

from ..config import get_list_limit
from ..exceptions import ValidationError
from ..models.enums import WorkerStatus, WorkerType, parse_enum
from ..models.worker import Worker
from .common import dump_json, from_iso, load_json, to_iso, utc_now


def parse_worker_types(worker_types: Iterable[str]) -> list[WorkerType]:
    """校验并保序去重 worker 类型列表"""
    parsed = [parse_enum(WorkerType, value, "worker_types") for value in worker_types]
    return list(dict.fromkeys(parsed))


class SqliteWorkerStore:
    """WorkerStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def upsert_heartbeat(
        self,
        worker_id: str,
        worker_types: Iterable[WorkerType | str],
        status: WorkerStatus | str = WorkerStatus.ONLINE,
        meta: str | None = None,
    ) -> Worker:
        """心跳 upsert：不存在则注册，存在则覆盖状态/类型/心跳时间"""
        if not worker_id or not worker_id.strip():
            raise ValidationError("worker_id", "worker_id is required")
        types = parse_worker_types(worker_types)
        status = parse_enum(WorkerStatus, status, "status")
        now = to_iso(utc_now())

        await self._conn.execute(
            """
            INSERT INTO workers (worker_id, status, worker_types_json, last_heartbeat_at,
                                 created_at, updated_at, meta)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(worker_id) DO UPDATE SET
                status = excluded.status,
                worker_types_json = excluded.worker_types_json,
                last_heartbeat_at = excluded.last_heartbeat_at,
                updated_at = excluded.updated_at,
                meta = excluded.meta
            """,
            (worker_id, status.value, dump_json([t.value for t in types]), now, now, now, meta),
        )
        return await self.get_worker(worker_id)

    async def ensure_registered(self, worker_id: str) -> bool:
        """worker 不存在时插入占位记录（无类型，心跳时间取当前）

        Returns:
            True 表示本次新注册
        """
        if not worker_id or not worker_id.strip():
            raise ValidationError("worker_id", "worker_id is required")
        now = to_iso(utc_now())
        cursor = await self._conn.execute(
            """
            INSERT INTO workers (worker_id, status, worker_types_json, last_heartbeat_at,
                                 created_at, updated_at)
            VALUES (?, ?, '[]', ?, ?, ?)
            ON CONFLICT(worker_id) DO NOTHING
            """,
            (worker_id, WorkerStatus.ONLINE.value, now, now, now),
        )
        return cursor.rowcount > 0

    async def get_worker(self, worker_id: str) -> Worker | None:
        """根据 worker_id 查询 worker"""
        cursor = await self._conn.execute(
            "SELECT * FROM workers WHERE worker_id = ?",
            (worker_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_worker(row)

    async def list_workers(self, limit: int | None = None) -> list[Worker]:
        """按最近活跃倒序列出 worker（无心跳时回退到 updated_at）"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM workers
            ORDER BY COALESCE(last_heartbeat_at, updated_at) DESC, worker_id ASC
            LIMIT ?
            """,
            (limit or get_list_limit(),),
        )
        rows = await cursor.fetchall()
        return [self._row_to_worker(row) for row in rows]

    @staticmethod
    def _row_to_worker(row: aiosqlite.Row) -> Worker:
        """将数据库行转换为 Worker 模型"""
        return Worker(
            worker_id=row["worker_id"],
            status=row["status"],
            worker_types=load_json(row["worker_types_json"], []),
            last_heartbeat_at=from_iso(row["last_heartbeat_at"]),
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
            meta=row["meta"],
        )
