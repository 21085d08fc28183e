"""TaskStore 单元测试

测试内容：
1. 创建 / 查询 / 列表
2. 完整 ID 与唯一前缀解析（含歧义、大小写与 GLOB 通配符转义）
3. set_status / set_priority / set_meta 的返回值与校验
"""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from missioncontrol.core.exceptions import NotFoundError, ValidationError
from missioncontrol.core.models import Priority, Task, TaskSource, TaskStatus


def _task(task_id: str, title: str = "任务", offset_s: int = 0, **overrides) -> Task:
    ts = datetime.now(UTC) + timedelta(seconds=offset_s)
    return Task(
        task_id=task_id,
        created_at=ts,
        updated_at=ts,
        title=title,
        source=TaskSource.CLI,
        **overrides,
    )


async def _insert(stores, *tasks: Task) -> None:
    async with stores.transaction():
        for task in tasks:
            await stores.task_store.create_task(task)


class TestCreateAndGet:
    async def test_roundtrip_fields(self, stores):
        task = _task(
            "11111111-aaaa-4000-8000-000000000001",
            title="部署文档",
            description="补充部署步骤",
            requester="alice",
            tags=["docs", "ops"],
            meta='{"channel": "c1"}',
            priority=Priority.HIGH,
        )
        await _insert(stores, task)

        loaded = await stores.task_store.get_task(task.task_id)
        assert loaded is not None
        assert loaded.title == "部署文档"
        assert loaded.description == "补充部署步骤"
        assert loaded.requester == "alice"
        assert loaded.tags == ["docs", "ops"]
        assert loaded.meta == '{"channel": "c1"}'
        assert loaded.priority == Priority.HIGH
        assert loaded.status == TaskStatus.QUEUED
        assert loaded.created_at == task.created_at

    async def test_get_missing_returns_none(self, stores):
        assert await stores.task_store.get_task("missing") is None

    async def test_require_missing_raises(self, stores):
        with pytest.raises(NotFoundError):
            await stores.task_store.require_task("missing")

    async def test_list_orders_by_updated_desc(self, stores):
        await _insert(
            stores,
            _task("t-old", offset_s=-10),
            _task("t-new", offset_s=0),
            _task("t-mid", offset_s=-5),
        )
        tasks = await stores.task_store.list_tasks()
        assert [t.task_id for t in tasks] == ["t-new", "t-mid", "t-old"]

    async def test_list_filters_status(self, stores):
        await _insert(
            stores,
            _task("t-1", status=TaskStatus.RUNNING),
            _task("t-2"),
        )
        running = await stores.task_store.list_tasks(status="running")
        assert [t.task_id for t in running] == ["t-1"]

    async def test_list_invalid_status(self, stores):
        with pytest.raises(ValidationError):
            await stores.task_store.list_tasks(status="bogus")


class TestPrefixResolution:
    """find_by_id_or_prefix / resolve"""

    @pytest_asyncio.fixture
    async def seeded(self, stores):
        await _insert(
            stores,
            _task("aaaa1111-0000-4000-8000-000000000001"),
            _task("aaaa2222-0000-4000-8000-000000000002"),
            _task("bbbb3333-0000-4000-8000-000000000003"),
        )
        return stores

    async def test_exact_match(self, seeded):
        task = await seeded.task_store.find_by_id_or_prefix(
            "aaaa1111-0000-4000-8000-000000000001"
        )
        assert task is not None
        assert task.task_id.startswith("aaaa1111")

    async def test_unique_prefix(self, seeded):
        task = await seeded.task_store.find_by_id_or_prefix("bbbb")
        assert task is not None
        assert task.task_id.startswith("bbbb3333")

    async def test_ambiguous_prefix_returns_none(self, seeded):
        assert await seeded.task_store.find_by_id_or_prefix("aaaa") is None
        assert await seeded.task_store.count_prefix_matches("aaaa") == 2

    async def test_no_match_returns_none(self, seeded):
        assert await seeded.task_store.find_by_id_or_prefix("cccc") is None

    async def test_blank_token_returns_none(self, seeded):
        assert await seeded.task_store.find_by_id_or_prefix("   ") is None

    async def test_resolve_ambiguous_error(self, seeded):
        with pytest.raises(NotFoundError) as exc_info:
            await seeded.task_store.resolve("aaaa")
        assert exc_info.value.ambiguous

    async def test_resolve_missing_error(self, seeded):
        with pytest.raises(NotFoundError) as exc_info:
            await seeded.task_store.resolve("cccc")
        assert not exc_info.value.ambiguous
        assert exc_info.value.message == "task not found: cccc"

    async def test_exact_match_beats_longer_ids_sharing_prefix(self, stores):
        await _insert(stores, _task("abc"), _task("abcd-1"), _task("abce-2"))

        exact = await stores.task_store.find_by_id_or_prefix("abc")
        assert exact is not None
        assert exact.task_id == "abc"

        prefixed = await stores.task_store.find_by_id_or_prefix("abcd")
        assert prefixed is not None
        assert prefixed.task_id == "abcd-1"

    async def test_prefix_is_case_sensitive(self, seeded):
        full_id = "bbbb3333-0000-4000-8000-000000000003"
        assert await seeded.task_store.find_by_id_or_prefix(full_id.upper()) is None
        assert await seeded.task_store.find_by_id_or_prefix("BBBB") is None
        assert await seeded.task_store.count_prefix_matches("AAAA") == 0

    async def test_wildcards_are_literal(self, stores):
        await _insert(
            stores,
            _task("ab*c-0001"),
            _task("abxc-0002"),
            _task("q?[r-0003"),
            _task("qz[r-0004"),
        )
        task = await stores.task_store.find_by_id_or_prefix("ab*")
        assert task is not None
        assert task.task_id == "ab*c-0001"
        task = await stores.task_store.find_by_id_or_prefix("q?[")
        assert task is not None
        assert task.task_id == "q?[r-0003"
        assert await stores.task_store.find_by_id_or_prefix("a%") is None
        assert await stores.task_store.find_by_id_or_prefix("ab_") is None


class TestMutations:
    async def test_set_status_returns_from_to(self, stores):
        await _insert(stores, _task("t-status"))
        async with stores.transaction():
            result = await stores.task_store.set_status("t-status", "blocked")
        assert result == (TaskStatus.QUEUED, TaskStatus.BLOCKED)
        loaded = await stores.task_store.get_task("t-status")
        assert loaded.status == TaskStatus.BLOCKED
        assert loaded.updated_at >= loaded.created_at

    async def test_set_status_missing_task(self, stores):
        with pytest.raises(NotFoundError):
            async with stores.transaction():
                await stores.task_store.set_status("missing", "done")

    async def test_set_status_invalid_value(self, stores):
        await _insert(stores, _task("t-bad"))
        with pytest.raises(ValidationError):
            async with stores.transaction():
                await stores.task_store.set_status("t-bad", "archived")

    async def test_set_priority(self, stores):
        await _insert(stores, _task("t-prio"))
        async with stores.transaction():
            result = await stores.task_store.set_priority("t-prio", "urgent")
        assert result == (Priority.NORMAL, Priority.URGENT)

    async def test_set_priority_invalid(self, stores):
        await _insert(stores, _task("t-prio-bad"))
        with pytest.raises(ValidationError):
            async with stores.transaction():
                await stores.task_store.set_priority("t-prio-bad", "critical")

    async def test_set_meta_returns_previous(self, stores):
        await _insert(stores, _task("t-meta", meta="v1"))
        async with stores.transaction():
            previous = await stores.task_store.set_meta("t-meta", "v2")
        assert previous == "v1"
        assert (await stores.task_store.get_task("t-meta")).meta == "v2"
