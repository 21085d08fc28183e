"""集成测试共享 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from missioncontrol.core.store import create_store_group


@pytest_asyncio.fixture
async def integration_db_path(tmp_path: Path, monkeypatch) -> Path:
    db_path = tmp_path / "integration.db"
    monkeypatch.setenv("MISSION_CONTROL_DB_PATH", str(db_path))
    monkeypatch.delenv("BASIC_AUTH_USER", raising=False)
    monkeypatch.delenv("BASIC_AUTH_PASS", raising=False)
    return db_path


@pytest_asyncio.fixture
async def integration_app(integration_db_path: Path):
    """集成测试用 FastAPI app"""
    from missioncontrol.gateway.main import create_app

    app = create_app()
    store_group = await create_store_group(str(integration_db_path))
    app.state.store_group = store_group

    yield app

    await store_group.close()


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
