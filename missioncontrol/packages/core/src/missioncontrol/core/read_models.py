"""读模型 -- dashboard / bot 使用的查询投影

只读，不写事件。接收 conn 的函数不自行开事务，调用方可以包在
StoreGroup.transaction(immediate=False) 里获得一致快照；
接收 StoreGroup 的函数需要解析任务引用，自行开启读事务，不可嵌套调用。
"""

from datetime import datetime, timedelta

import aiosqlite

from .config import (
    EVENT_LIST_LIMIT,
    get_activity_window_days,
    get_list_limit,
    get_stale_worker_seconds,
)
from .models import (
    TERMINAL_STATES,
    AssignmentStatus,
    DailyCount,
    Event,
    TaskDetail,
    TaskOverview,
    TaskStatus,
    WorkerCompletedCount,
    WorkerOverview,
    parse_enum,
)
from .store import StoreGroup
from .store.common import from_iso, load_json, to_iso, utc_now

# 终态列表，用于 SQL IN 子句
_TERMINAL_VALUES = tuple(sorted(status.value for status in TERMINAL_STATES))
_TERMINAL_PLACEHOLDERS = ", ".join("?" for _ in _TERMINAL_VALUES)


async def list_task_overview(
    conn: aiosqlite.Connection,
    status: TaskStatus | str | None = None,
    limit: int | None = None,
) -> list[TaskOverview]:
    """任务列表：任务 + active assignment + open claim + 首次领取/最近释放时间

    两条部分唯一索引保证 LEFT JOIN 不会放大行数。
    """
    params: list = [AssignmentStatus.ACTIVE.value]
    where = ""
    if status:
        status = parse_enum(TaskStatus, status, "status")
        where = "WHERE t.status = ?"
        params.append(status.value)
    params.append(limit or get_list_limit())

    cursor = await conn.execute(
        f"""
        SELECT
            t.*,
            a.worker_type AS assigned_worker_type,
            a.worker_id   AS assigned_worker_id,
            c.worker_id   AS claimed_by_worker_id,
            c.claimed_at  AS claimed_at,
            (SELECT MIN(h.claimed_at) FROM task_claims h
              WHERE h.task_id = t.task_id) AS started_at,
            (SELECT MAX(h.released_at) FROM task_claims h
              WHERE h.task_id = t.task_id) AS finished_at
        FROM tasks t
        LEFT JOIN task_assignments a
            ON a.task_id = t.task_id AND a.status = ?
        LEFT JOIN task_claims c
            ON c.task_id = t.task_id AND c.released_at IS NULL
        {where}
        ORDER BY t.updated_at DESC, t.task_id ASC
        LIMIT ?
        """,
        params,
    )
    rows = await cursor.fetchall()
    return [
        TaskOverview(
            task_id=row["task_id"],
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
            title=row["title"],
            description=row["description"],
            status=row["status"],
            priority=row["priority"],
            tags=load_json(row["tags_json"], []),
            assigned_worker_type=row["assigned_worker_type"],
            assigned_worker_id=row["assigned_worker_id"],
            claimed_by_worker_id=row["claimed_by_worker_id"],
            claimed_at=from_iso(row["claimed_at"]),
            started_at=from_iso(row["started_at"]),
            finished_at=from_iso(row["finished_at"]),
        )
        for row in rows
    ]


async def list_worker_overview(
    conn: aiosqlite.Connection,
    limit: int | None = None,
    now: datetime | None = None,
    stale_after_seconds: int | None = None,
) -> list[WorkerOverview]:
    """worker 列表：每个 worker 恰好一行

    同时持有多条 open claim 时只展示最近领取的一条，
    其余数量通过 active_claim_count 体现。
    """
    now = now or utc_now()
    if stale_after_seconds is None:
        stale_after_seconds = get_stale_worker_seconds()
    stale_before = now - timedelta(seconds=stale_after_seconds)

    cursor = await conn.execute(
        """
        SELECT
            w.*,
            (SELECT COUNT(*) FROM task_claims n
              WHERE n.worker_id = w.worker_id AND n.released_at IS NULL) AS active_claim_count,
            cur.task_id    AS current_task_id,
            cur.claimed_at AS current_task_claimed_at,
            t.title        AS current_task_title,
            t.status       AS current_task_status,
            t.updated_at   AS current_task_updated_at
        FROM workers w
        LEFT JOIN task_claims cur
            ON cur.claim_id = (
                SELECT o.claim_id FROM task_claims o
                WHERE o.worker_id = w.worker_id AND o.released_at IS NULL
                ORDER BY o.claimed_at DESC, o.claim_id DESC
                LIMIT 1
            )
        LEFT JOIN tasks t
            ON t.task_id = cur.task_id
        ORDER BY COALESCE(w.last_heartbeat_at, w.updated_at) DESC, w.worker_id ASC
        LIMIT ?
        """,
        (limit or get_list_limit(),),
    )
    rows = await cursor.fetchall()

    result = []
    for row in rows:
        last_heartbeat_at = from_iso(row["last_heartbeat_at"])
        result.append(
            WorkerOverview(
                worker_id=row["worker_id"],
                status=row["status"],
                worker_types=load_json(row["worker_types_json"], []),
                last_heartbeat_at=last_heartbeat_at,
                updated_at=from_iso(row["updated_at"]),
                is_stale=last_heartbeat_at is None or last_heartbeat_at < stale_before,
                active_claim_count=row["active_claim_count"],
                current_task_id=row["current_task_id"],
                current_task_claimed_at=from_iso(row["current_task_claimed_at"]),
                current_task_title=row["current_task_title"],
                current_task_status=row["current_task_status"],
                current_task_updated_at=from_iso(row["current_task_updated_at"]),
            )
        )
    return result


async def count_tasks_by_status(conn: aiosqlite.Connection) -> dict[TaskStatus, int]:
    """按状态计数，八个状态全部出现（无任务的状态补 0）"""
    counts = {status: 0 for status in TaskStatus}
    cursor = await conn.execute("SELECT status, COUNT(*) AS n FROM tasks GROUP BY status")
    for row in await cursor.fetchall():
        counts[TaskStatus(row["status"])] = row["n"]
    return counts


async def completed_by_worker(conn: aiosqlite.Connection) -> list[WorkerCompletedCount]:
    """按领取过任务的 worker 统计已到终态的任务数（同一任务多次领取只计一次）"""
    cursor = await conn.execute(
        f"""
        SELECT c.worker_id AS worker_id, COUNT(DISTINCT t.task_id) AS completed_count
        FROM tasks t
        JOIN task_claims c ON c.task_id = t.task_id
        WHERE t.status IN ({_TERMINAL_PLACEHOLDERS})
        GROUP BY c.worker_id
        ORDER BY completed_count DESC, worker_id ASC
        """,
        _TERMINAL_VALUES,
    )
    rows = await cursor.fetchall()
    return [
        WorkerCompletedCount(worker_id=row["worker_id"], completed_count=row["completed_count"])
        for row in rows
    ]


async def worker_daily_completions(
    conn: aiosqlite.Connection,
    worker_id: str,
    days: int | None = None,
    now: datetime | None = None,
) -> list[DailyCount]:
    """单个 worker 在滚动窗口内每日完成的任务数（热力图），按日期正序

    以任务最后更新时间的 UTC 日期归档。
    """
    now = now or utc_now()
    days = days or get_activity_window_days()
    cutoff = to_iso(now - timedelta(days=days))

    cursor = await conn.execute(
        f"""
        SELECT substr(t.updated_at, 1, 10) AS day, COUNT(DISTINCT t.task_id) AS n
        FROM tasks t
        JOIN task_claims c ON c.task_id = t.task_id
        WHERE t.status IN ({_TERMINAL_PLACEHOLDERS})
          AND c.worker_id = ?
          AND t.updated_at >= ?
        GROUP BY day
        ORDER BY day ASC
        """,
        (*_TERMINAL_VALUES, worker_id, cutoff),
    )
    rows = await cursor.fetchall()
    return [DailyCount(day=row["day"], count=row["n"]) for row in rows]


async def events_for_task(
    stores: StoreGroup,
    task_ref: str,
    limit: int = EVENT_LIST_LIMIT,
) -> list[Event]:
    """按 ID 或唯一前缀查询任务事件，最新在前

    Raises:
        NotFoundError: 任务不存在或前缀有歧义
    """
    async with stores.transaction(immediate=False):
        task = await stores.task_store.resolve(task_ref)
        return await stores.event_store.get_events_for_task(task.task_id, limit)


async def task_detail(
    stores: StoreGroup,
    task_ref: str,
    event_limit: int = EVENT_LIST_LIMIT,
) -> TaskDetail:
    """单任务详情，全部查询处于同一读事务"""
    async with stores.transaction(immediate=False):
        task = await stores.task_store.resolve(task_ref)
        return TaskDetail(
            task=task,
            active_assignment=await stores.assignment_store.get_active(task.task_id),
            open_claim=await stores.claim_store.get_open(task.task_id),
            assignments=await stores.assignment_store.list_for_task(task.task_id),
            claims=await stores.claim_store.list_for_task(task.task_id),
            events=await stores.event_store.get_events_for_task(task.task_id, event_limit),
        )

