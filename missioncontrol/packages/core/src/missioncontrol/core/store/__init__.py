"""Mission Control Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
StoreGroup 在进程启动时创建一次，显式传递给所有组件，不使用全局单例。
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from .assignment_store import SqliteAssignmentStore
from .claim_store import SqliteClaimStore
from .event_store import SqliteEventStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .transaction import transaction
from .worker_store import SqliteWorkerStore


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接与写锁"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.write_lock = asyncio.Lock()
        self.task_store = SqliteTaskStore(conn)
        self.assignment_store = SqliteAssignmentStore(conn)
        self.claim_store = SqliteClaimStore(conn)
        self.worker_store = SqliteWorkerStore(conn)
        self.event_store = SqliteEventStore(conn)

    @asynccontextmanager
    async def transaction(
        self,
        *,
        immediate: bool = True,
    ) -> AsyncGenerator[aiosqlite.Connection, None]:
        """在本连接上开启一个原子事务"""
        async with transaction(self.conn, self.write_lock, immediate=immediate) as conn:
            yield conn

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteAssignmentStore",
    "SqliteClaimStore",
    "SqliteWorkerStore",
    "SqliteEventStore",
    "init_db",
    "transaction",
]
