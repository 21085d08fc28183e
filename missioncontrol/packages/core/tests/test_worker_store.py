"""WorkerStore 单元测试 -- 心跳即注册"""

import pytest
from missioncontrol.core.exceptions import ValidationError
from missioncontrol.core.models import WorkerStatus, WorkerType
from missioncontrol.core.store.worker_store import parse_worker_types


class TestParseWorkerTypes:
    def test_dedupes_in_order(self):
        assert parse_worker_types(["tester", "coder", "tester"]) == [
            WorkerType.TESTER,
            WorkerType.CODER,
        ]

    def test_rejects_unknown(self):
        with pytest.raises(ValidationError):
            parse_worker_types(["coder", "astronaut"])


class TestUpsertHeartbeat:
    async def test_first_heartbeat_registers(self, stores):
        async with stores.transaction():
            worker = await stores.worker_store.upsert_heartbeat("w1", ["coder"])
        assert worker.worker_id == "w1"
        assert worker.status == WorkerStatus.ONLINE
        assert worker.worker_types == [WorkerType.CODER]
        assert worker.last_heartbeat_at is not None

    async def test_repeat_heartbeat_is_idempotent(self, stores):
        async with stores.transaction():
            first = await stores.worker_store.upsert_heartbeat("w1", ["coder"])
        async with stores.transaction():
            second = await stores.worker_store.upsert_heartbeat(
                "w1", ["coder", "seo"], status="draining", meta='{"v": 2}'
            )

        assert second.created_at == first.created_at
        assert second.last_heartbeat_at >= first.last_heartbeat_at
        assert second.status == WorkerStatus.DRAINING
        assert second.worker_types == [WorkerType.CODER, WorkerType.SEO]
        assert second.meta == '{"v": 2}'
        assert len(await stores.worker_store.list_workers()) == 1

    async def test_invalid_status(self, stores):
        with pytest.raises(ValidationError):
            async with stores.transaction():
                await stores.worker_store.upsert_heartbeat("w1", [], status="asleep")

    async def test_blank_worker_id(self, stores):
        with pytest.raises(ValidationError):
            async with stores.transaction():
                await stores.worker_store.upsert_heartbeat("  ", ["coder"])


class TestEnsureRegistered:
    async def test_inserts_placeholder_once(self, stores):
        async with stores.transaction():
            assert await stores.worker_store.ensure_registered("w9") is True
            assert await stores.worker_store.ensure_registered("w9") is False
        worker = await stores.worker_store.get_worker("w9")
        assert worker.worker_types == []
        assert worker.status == WorkerStatus.ONLINE

    async def test_does_not_touch_existing(self, stores):
        async with stores.transaction():
            await stores.worker_store.upsert_heartbeat("w1", ["designer"], status="offline")
            await stores.worker_store.ensure_registered("w1")
        worker = await stores.worker_store.get_worker("w1")
        assert worker.status == WorkerStatus.OFFLINE
        assert worker.worker_types == [WorkerType.DESIGNER]


class TestListWorkers:
    async def test_most_recent_heartbeat_first(self, stores):
        for worker_id in ("w-a", "w-b", "w-c"):
            async with stores.transaction():
                await stores.worker_store.upsert_heartbeat(worker_id, [])
        async with stores.transaction():
            await stores.worker_store.upsert_heartbeat("w-a", [])

        workers = await stores.worker_store.list_workers()
        assert [w.worker_id for w in workers] == ["w-a", "w-c", "w-b"]

    async def test_limit(self, stores):
        async with stores.transaction():
            for i in range(5):
                await stores.worker_store.upsert_heartbeat(f"w{i}", [])
        assert len(await stores.worker_store.list_workers(limit=2)) == 2
