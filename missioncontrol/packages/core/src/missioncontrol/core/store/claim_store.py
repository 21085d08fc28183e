"""ClaimStore SQLite 实现

task_claims 表独占 claim.released_at / claim.status 字段。
同一任务至多一条 open claim（released_at IS NULL），
部分唯一索引 idx_claims_one_open 兜底并发竞争。
"""

from collections.abc import AsyncIterator

import aiosqlite
from ulid import ULID

from ..exceptions import ConflictError, NotFoundError, short_id
from ..models.claim import Claim
from ..models.enums import ClaimStatus
from .common import from_iso, to_iso, utc_now


class SqliteClaimStore:
    """ClaimStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def claim(
        self,
        task_id: str,
        worker_id: str,
        meta: str | None = None,
    ) -> Claim:
        """worker 领取任务的独占执行权

        Raises:
            NotFoundError: 任务或 worker 不存在
            ConflictError: 任务已有 open claim（原 claim 保持不变）
        """
        await self._require_exists("tasks", "task_id", task_id, "task")
        await self._require_exists("workers", "worker_id", worker_id, "worker")

        existing = await self.get_open(task_id)
        if existing is not None:
            raise self._conflict(task_id, existing.worker_id)

        claim = Claim(
            claim_id=str(ULID()),
            task_id=task_id,
            worker_id=worker_id,
            status=ClaimStatus.CLAIMED,
            claimed_at=utc_now(),
            meta=meta,
        )
        try:
            await self._conn.execute(
                """
                INSERT INTO task_claims (claim_id, task_id, worker_id, status,
                                         claimed_at, released_at, meta)
                VALUES (?, ?, ?, ?, ?, NULL, ?)
                """,
                (
                    claim.claim_id,
                    claim.task_id,
                    claim.worker_id,
                    claim.status.value,
                    to_iso(claim.claimed_at),
                    claim.meta,
                ),
            )
        except aiosqlite.IntegrityError as e:
            # 其他进程抢先插入了 open claim
            if self._is_open_claim_conflict(e):
                raise self._conflict(task_id, None) from e
            raise
        return claim

    async def release(self, task_id: str, worker_id: str | None = None) -> Claim | None:
        """释放任务当前的 open claim

        按任务释放，worker_id 仅作记录不参与判定（运维可代为释放他人的 claim）；
        调用方可自行比对返回 claim 的 worker_id。没有 open claim 时静默返回 None。
        """
        open_claim = await self.get_open(task_id)
        if open_claim is None:
            return None

        released_at = utc_now()
        await self._conn.execute(
            """
            UPDATE task_claims
            SET released_at = ?, status = ?
            WHERE claim_id = ? AND released_at IS NULL
            """,
            (to_iso(released_at), ClaimStatus.RELEASED.value, open_claim.claim_id),
        )
        return open_claim.model_copy(
            update={"released_at": released_at, "status": ClaimStatus.RELEASED}
        )

    async def get_open(self, task_id: str) -> Claim | None:
        """查询任务当前的 open claim"""
        cursor = await self._conn.execute(
            "SELECT * FROM task_claims WHERE task_id = ? AND released_at IS NULL",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_claim(row)

    async def list_for_task(self, task_id: str) -> list[Claim]:
        """查询任务的 claim 历史（谁、何时、做了多久），按领取时间正序"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM task_claims
            WHERE task_id = ?
            ORDER BY claimed_at ASC, claim_id ASC
            """,
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_claim(row) for row in rows]

    async def open_claims_for_worker(self, worker_id: str) -> AsyncIterator[Claim]:
        """逐行产出 worker 当前持有的 open claim

        每次调用都是一次新查询，不保留游标状态。
        """
        cursor = await self._conn.execute(
            """
            SELECT * FROM task_claims
            WHERE worker_id = ? AND released_at IS NULL
            ORDER BY claimed_at DESC, claim_id DESC
            """,
            (worker_id,),
        )
        try:
            async for row in cursor:
                yield self._row_to_claim(row)
        finally:
            await cursor.close()

    async def _require_exists(self, table: str, column: str, value: str, entity: str) -> None:
        cursor = await self._conn.execute(
            f"SELECT 1 FROM {table} WHERE {column} = ?",
            (value,),
        )
        if await cursor.fetchone() is None:
            raise NotFoundError(entity, value)

    @staticmethod
    def _conflict(task_id: str, holder: str | None) -> ConflictError:
        if holder:
            return ConflictError(
                f"task {short_id(task_id)} is already claimed by {holder}; release it first"
            )
        return ConflictError(f"task {short_id(task_id)} is already claimed; release it first")

    @staticmethod
    def _is_open_claim_conflict(error: Exception) -> bool:
        text = str(error)
        return "idx_claims_one_open" in text or "task_claims.task_id" in text

    @staticmethod
    def _row_to_claim(row: aiosqlite.Row) -> Claim:
        """将数据库行转换为 Claim 模型"""
        return Claim(
            claim_id=row["claim_id"],
            task_id=row["task_id"],
            worker_id=row["worker_id"],
            status=row["status"],
            claimed_at=from_iso(row["claimed_at"]),
            released_at=from_iso(row["released_at"]),
            meta=row["meta"],
        )
