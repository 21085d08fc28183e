"""事务封装 -- 所有跨实体写操作的原子边界

在同一 SQLite 事务内提交状态变更和事件写入：任一步失败（包括事件写入失败）
整体回滚，不存在部分提交。

同一连接上的写事务由 asyncio.Lock 串行化；跨进程由 BEGIN IMMEDIATE
取得 RESERVED 锁，配合 busy_timeout 等待其他写者。
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import aiosqlite
import structlog

log = structlog.get_logger()


@asynccontextmanager
async def transaction(
    conn: aiosqlite.Connection,
    lock: asyncio.Lock,
    *,
    immediate: bool = True,
) -> AsyncGenerator[aiosqlite.Connection, None]:
    """开启事务，正常退出时提交，异常时回滚并原样抛出

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        lock: 该连接的写锁
        immediate: True 使用 BEGIN IMMEDIATE（写事务），False 使用 BEGIN（只读快照）
    """
    async with lock:
        await conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        try:
            yield conn
            await conn.commit()
        except BaseException as e:
            await conn.rollback()
            log.warning(
                "transaction_rolled_back",
                error_type=type(e).__name__,
            )
            raise
