"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from missioncontrol.core.orchestrator import TaskOrchestrator
from missioncontrol.core.store import StoreGroup, create_store_group


@pytest_asyncio.fixture
async def core_db_path(tmp_path: Path) -> Path:
    """核心层临时数据库路径"""
    return tmp_path / "core_test.db"


@pytest_asyncio.fixture
async def stores(core_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """核心层已初始化的 StoreGroup"""
    store_group = await create_store_group(str(core_db_path))
    yield store_group
    await store_group.close()


@pytest_asyncio.fixture
async def orchestrator(stores: StoreGroup) -> TaskOrchestrator:
    """默认身份（orchestrator）的 Facade"""
    return TaskOrchestrator(stores)


@pytest_asyncio.fixture
async def workers(orchestrator: TaskOrchestrator) -> list[str]:
    """预先注册的两个 worker"""
    await orchestrator.heartbeat("w1", ["coder"])
    await orchestrator.heartbeat("w2", ["coder", "tester"])
    return ["w1", "w2"]
