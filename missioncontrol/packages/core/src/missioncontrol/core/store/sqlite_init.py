"""SQLite 数据库初始化

PRAGMA 配置 + 五张表 DDL + 索引创建。
使用 aiosqlite 异步操作。

封闭词表通过 CHECK 约束落库；两条核心不变量由部分唯一索引兜底：
- 每个任务至多一条 status='active' 的 assignment
- 每个任务至多一条 released_at IS NULL 的 claim
"""

import aiosqlite

from ..models.enums import (
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
)


def _in_list(enum_cls) -> str:
    """生成 CHECK (col IN (...)) 的取值列表"""
    return ", ".join(f"'{member.value}'" for member in enum_cls)


# tasks 表 DDL
_TASKS_DDL = f"""
CREATE TABLE IF NOT EXISTS tasks (
    task_id     TEXT PRIMARY KEY,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    title       TEXT NOT NULL,
    description TEXT,
    source      TEXT NOT NULL CHECK (source IN ({_in_list(TaskSource)})),
    requester   TEXT,
    status      TEXT NOT NULL DEFAULT 'queued'
                CHECK (status IN ({_in_list(TaskStatus)})),
    priority    TEXT NOT NULL DEFAULT 'normal'
                CHECK (priority IN ({_in_list(Priority)})),
    tags_json   TEXT NOT NULL DEFAULT '[]',
    meta        TEXT
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_updated_at ON tasks(updated_at DESC);",
]

# workers 表 DDL
_WORKERS_DDL = f"""
CREATE TABLE IF NOT EXISTS workers (
    worker_id         TEXT PRIMARY KEY,
    status            TEXT NOT NULL DEFAULT 'online'
                      CHECK (status IN ({_in_list(WorkerStatus)})),
    worker_types_json TEXT NOT NULL DEFAULT '[]',
    last_heartbeat_at TEXT,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL,
    meta              TEXT
);
"""

# task_assignments 表 DDL
_ASSIGNMENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS task_assignments (
    assignment_id          TEXT PRIMARY KEY,
    task_id                TEXT NOT NULL,
    worker_type            TEXT NOT NULL CHECK (worker_type IN ({_in_list(WorkerType)})),
    worker_id              TEXT,
    status                 TEXT NOT NULL DEFAULT 'active'
                           CHECK (status IN ({_in_list(AssignmentStatus)})),
    assigned_by_actor_type TEXT NOT NULL CHECK (assigned_by_actor_type IN ({_in_list(ActorType)})),
    assigned_by_actor_id   TEXT,
    note                   TEXT,
    meta                   TEXT,
    created_at             TEXT NOT NULL,
    updated_at             TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id),
    FOREIGN KEY (worker_id) REFERENCES workers(worker_id)
);
"""

_ASSIGNMENTS_INDEXES = [
    # 每个任务至多一条 active assignment
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_assignments_one_active "
        "ON task_assignments(task_id) WHERE status = 'active';"
    ),
    "CREATE INDEX IF NOT EXISTS idx_assignments_task_id ON task_assignments(task_id);",
]

# task_claims 表 DDL
_CLAIMS_DDL = f"""
CREATE TABLE IF NOT EXISTS task_claims (
    claim_id    TEXT PRIMARY KEY,
    task_id     TEXT NOT NULL,
    worker_id   TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'claimed'
                CHECK (status IN ({_in_list(ClaimStatus)})),
    claimed_at  TEXT NOT NULL,
    released_at TEXT,
    meta        TEXT,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id),
    FOREIGN KEY (worker_id) REFERENCES workers(worker_id)
);
"""

_CLAIMS_INDEXES = [
    # 每个任务至多一条 open claim
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_claims_one_open "
        "ON task_claims(task_id) WHERE released_at IS NULL;"
    ),
    "CREATE INDEX IF NOT EXISTS idx_claims_task_id ON task_claims(task_id);",
    "CREATE INDEX IF NOT EXISTS idx_claims_worker_open ON task_claims(worker_id, released_at);",
]

# events 表 DDL
_EVENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS events (
    event_id       TEXT PRIMARY KEY,
    created_at     TEXT NOT NULL,
    task_id        TEXT,
    task_seq       INTEGER,
    actor_type     TEXT NOT NULL CHECK (actor_type IN ({_in_list(ActorType)})),
    actor_id       TEXT,
    level          TEXT NOT NULL DEFAULT 'info'
                   CHECK (level IN ({_in_list(EventLevel)})),
    type           TEXT NOT NULL CHECK (type IN ({_in_list(EventType)})),
    message        TEXT,
    correlation_id TEXT,
    payload        TEXT,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_EVENTS_INDEXES = [
    # 任务内事件序号唯一约束（确保 task_seq 严格单调递增）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_events_task_seq "
        "ON events(task_id, task_seq) WHERE task_id IS NOT NULL;"
    ),
    "CREATE INDEX IF NOT EXISTS idx_events_created_at ON events(created_at DESC);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    conn.row_factory = aiosqlite.Row

    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表（workers 先于引用它的表）
    await conn.execute(_TASKS_DDL)
    await conn.execute(_WORKERS_DDL)
    await conn.execute(_ASSIGNMENTS_DDL)
    await conn.execute(_CLAIMS_DDL)
    await conn.execute(_EVENTS_DDL)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _ASSIGNMENTS_INDEXES + _CLAIMS_INDEXES + _EVENTS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
