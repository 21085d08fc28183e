"""apps/gateway 测试配置 -- httpx AsyncClient + 临时数据库

ASGITransport 不触发 lifespan，StoreGroup 在 fixture 中手动初始化。
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from missioncontrol.core.store import create_store_group


@pytest_asyncio.fixture
async def gateway_db_path(tmp_path: Path, monkeypatch) -> Path:
    """Gateway 临时数据库路径，同时清除认证配置"""
    db_path = tmp_path / "sqlite" / "gateway.db"
    monkeypatch.setenv("MISSION_CONTROL_DB_PATH", str(db_path))
    monkeypatch.delenv("BASIC_AUTH_USER", raising=False)
    monkeypatch.delenv("BASIC_AUTH_PASS", raising=False)
    return db_path


@pytest_asyncio.fixture
async def app(gateway_db_path: Path):
    """创建测试用 FastAPI app 实例（手动初始化，绕过 lifespan）"""
    from missioncontrol.gateway.main import create_app

    application = create_app()
    store_group = await create_store_group(str(gateway_db_path))
    application.state.store_group = store_group

    yield application

    await store_group.close()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def registered_workers(client: AsyncClient) -> list[str]:
    """通过心跳接口预先注册两个 worker"""
    for worker_id, types in (("w1", ["coder"]), ("w2", ["coder", "tester"])):
        resp = await client.post(
            f"/api/workers/{worker_id}/heartbeat",
            json={"worker_types": types},
        )
        assert resp.status_code == 200
    return ["w1", "w2"]
