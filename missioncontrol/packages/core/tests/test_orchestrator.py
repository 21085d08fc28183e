"""TaskOrchestrator 测试

测试内容：
1. 五个端到端场景（创建、重新分配、领取冲突、心跳注册、取消）
2. 组合操作 create_and_assign / start_task / complete_task
3. 事件写入失败时整体回滚
4. actor / correlation_id 写入事件
5. 任务引用解析（短前缀、歧义、不存在）
"""

import pytest
from missioncontrol.core import orchestrator as orchestrator_module
from missioncontrol.core.exceptions import ConflictError, NotFoundError, ValidationError
from missioncontrol.core.models import (
    ActorType,
    AssignmentStatus,
    ClaimStatus,
    EventType,
    Priority,
    TaskSource,
    TaskStatus,
    WorkerType,
)
from missioncontrol.core.orchestrator import Actor, TaskOrchestrator
from structlog.testing import capture_logs


async def _event_types(stores, task_id: str) -> list[EventType]:
    """按写入顺序返回事件类型"""
    events = await stores.event_store.get_events_for_task(task_id)
    return [e.type for e in reversed(events)]


class TestScenarios:
    """核心场景"""

    async def test_create_defaults(self, stores, orchestrator):
        task = await orchestrator.create_task("Fix bug")

        stored = await stores.task_store.get_task(task.task_id)
        assert stored.priority == Priority.NORMAL
        assert stored.status == TaskStatus.QUEUED
        assert stored.source == TaskSource.CLI
        assert await _event_types(stores, task.task_id) == [EventType.TASK_CREATED]

        event = (await stores.event_store.get_events_for_task(task.task_id))[0]
        assert event.message == "task created: Fix bug"
        assert event.payload["priority"] == "normal"

    async def test_reassign_supersedes(self, stores, orchestrator, workers):
        task = await orchestrator.create_task("重新分配")
        first = await orchestrator.assign(task.task_id, "coder", "w1")
        second = await orchestrator.assign(task.task_id, "researcher")

        active = await stores.assignment_store.get_active(task.task_id)
        assert active.assignment_id == second.assignment_id
        assert active.worker_type == WorkerType.RESEARCHER
        assert active.worker_id is None

        history = await stores.assignment_store.list_for_task(task.task_id)
        assert history[0].assignment_id == first.assignment_id
        assert history[0].status == AssignmentStatus.SUPERSEDED

        events = await stores.event_store.get_events_for_task(task.task_id)
        assert events[0].payload["superseded_assignment_id"] == first.assignment_id
        assert events[1].payload["superseded_assignment_id"] is None
        assert events[1].message == "task assigned: coder (w1)"
        assert events[0].message == "task assigned: researcher"

    async def test_claim_conflict_then_release(self, stores, orchestrator, workers):
        task = await orchestrator.create_task("领取冲突")
        original = await orchestrator.claim(task.task_id, "w1")

        with pytest.raises(ConflictError):
            await orchestrator.claim(task.task_id, "w2")
        still_open = await stores.claim_store.get_open(task.task_id)
        assert still_open.claim_id == original.claim_id

        # 任意调用方都可以按任务释放
        released = await orchestrator.release(task.task_id, "w2")
        assert released.worker_id == "w1"
        assert released.released_at is not None

        reclaimed = await orchestrator.claim(task.task_id, "w2")
        assert reclaimed.worker_id == "w2"

        # 失败的领取不写事件
        assert await _event_types(stores, task.task_id) == [
            EventType.TASK_CREATED,
            EventType.TASK_CLAIMED,
            EventType.TASK_RELEASED,
            EventType.TASK_CLAIMED,
        ]

        released_event = (await stores.event_store.get_events_for_task(task.task_id))[1]
        assert released_event.payload == {
            "claim_id": original.claim_id,
            "worker_id": "w1",
            "requested_by": "w2",
        }

    async def test_claim_keeps_task_status(self, orchestrator, workers):
        task = await orchestrator.create_task("领取不改状态")
        await orchestrator.claim(task.task_id, "w1")
        assert (await orchestrator.get_task(task.task_id)).status == TaskStatus.QUEUED

    async def test_heartbeat_twice_single_row(self, stores, orchestrator):
        first = await orchestrator.heartbeat("w1", ["coder"])
        second = await orchestrator.heartbeat("w1", ["researcher", "seo"])

        workers = await stores.worker_store.list_workers()
        assert [w.worker_id for w in workers] == ["w1"]
        assert workers[0].worker_types == [WorkerType.RESEARCHER, WorkerType.SEO]
        assert second.last_heartbeat_at >= first.last_heartbeat_at

    async def test_cancel_keeps_open_claim(self, stores, orchestrator, workers):
        task = await orchestrator.create_task("取消")
        assignment = await orchestrator.assign(task.task_id, "coder", "w1")
        claim = await orchestrator.claim(task.task_id, "w1")

        canceled = await orchestrator.cancel(task.task_id)

        assert canceled.status == TaskStatus.CANCELED
        history = await stores.assignment_store.list_for_task(task.task_id)
        assert history[0].status == AssignmentStatus.CANCELED
        assert await stores.assignment_store.get_active(task.task_id) is None

        open_claim = await stores.claim_store.get_open(task.task_id)
        assert open_claim.claim_id == claim.claim_id

        event = (await stores.event_store.get_events_for_task(task.task_id))[0]
        assert event.type == EventType.TASK_CANCELED
        assert event.payload == {"from": "queued", "assignment_id": assignment.assignment_id}


class TestRelease:
    async def test_release_without_claim_writes_nothing(self, stores, orchestrator):
        task = await orchestrator.create_task("无 claim")

        with capture_logs() as logs:
            assert await orchestrator.release(task.task_id) is None

        assert await _event_types(stores, task.task_id) == [EventType.TASK_CREATED]
        assert logs[-1]["event"] == "task_release_noop"


class TestComposite:
    async def test_create_and_assign(self, stores, orchestrator, workers):
        task, assignment = await orchestrator.create_and_assign(
            "一步到位",
            "tester",
            "w2",
            priority="high",
            tags=["qa", "qa", "web"],
            note="from chat",
        )

        assert task.priority == Priority.HIGH
        assert task.tags == ["qa", "web"]
        assert assignment.worker_type == WorkerType.TESTER
        assert assignment.note == "from chat"
        assert assignment.assigned_by_actor_type == ActorType.ORCHESTRATOR
        assert await _event_types(stores, task.task_id) == [
            EventType.TASK_CREATED,
            EventType.TASK_ASSIGNED,
        ]

    async def test_create_and_assign_unknown_worker_rolls_back(self, stores, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.create_and_assign("不存在的 worker", "coder", "ghost")
        assert await stores.task_store.list_tasks() == []

    async def test_start_task_registers_worker(self, stores):
        orchestrator = TaskOrchestrator(stores, Actor(actor_id="mcctl"))
        started = await orchestrator.start_task("w-new", "回填任务", worker_type="designer")

        assert started.task.status == TaskStatus.RUNNING
        assert started.assignment.worker_id == "w-new"
        assert started.assignment.worker_type == WorkerType.DESIGNER
        assert started.assignment.note == "started via mcctl"
        assert started.claim.meta == '{"source": "mcctl"}'
        assert await stores.worker_store.get_worker("w-new") is not None

        stored = await stores.task_store.get_task(started.task.task_id)
        assert stored.status == TaskStatus.RUNNING
        assert await _event_types(stores, stored.task_id) == [
            EventType.TASK_CREATED,
            EventType.TASK_ASSIGNED,
            EventType.TASK_CLAIMED,
        ]

    async def test_complete_task(self, stores, orchestrator):
        started = await orchestrator.start_task("w1", "完成任务")
        completed = await orchestrator.complete_task("w1", started.task.short_id)

        assert completed.from_status == TaskStatus.RUNNING
        assert completed.to_status == TaskStatus.DONE
        assert completed.task.status == TaskStatus.DONE
        assert completed.released.status == ClaimStatus.RELEASED
        assert await stores.claim_store.get_open(started.task.task_id) is None

    async def test_complete_without_claim(self, stores, orchestrator):
        task = await orchestrator.create_task("人工清理")
        completed = await orchestrator.complete_task("w1", task.task_id, status="failed")

        assert completed.released is None
        assert completed.task.status == TaskStatus.FAILED
        assert await _event_types(stores, task.task_id) == [
            EventType.TASK_CREATED,
            EventType.TASK_STATUS_CHANGED,
        ]

    async def test_complete_invalid_status(self, orchestrator):
        started = await orchestrator.start_task("w1", "非法终态")
        with pytest.raises(ValidationError):
            await orchestrator.complete_task("w1", started.task.task_id, status="finished")


class TestMutations:
    async def test_change_priority(self, stores, orchestrator):
        task = await orchestrator.create_task("优先级")
        result = await orchestrator.change_priority(task.task_id, "urgent")

        assert result == (Priority.NORMAL, Priority.URGENT)
        event = (await stores.event_store.get_events_for_task(task.task_id))[0]
        assert event.type == EventType.TASK_UPDATED
        assert event.payload == {"field": "priority", "from": "normal", "to": "urgent"}

    async def test_change_meta_not_logged_in_payload(self, stores, orchestrator):
        task = await orchestrator.create_task("元数据")
        updated = await orchestrator.change_meta(task.task_id, '{"secret": 1}')

        assert updated.meta == '{"secret": 1}'
        event = (await stores.event_store.get_events_for_task(task.task_id))[0]
        assert event.payload == {"field": "meta", "from": None, "to": None}

    async def test_status_event_payload(self, stores, orchestrator):
        task = await orchestrator.create_task("状态")
        await orchestrator.change_status(task.task_id, "blocked")

        event = (await stores.event_store.get_events_for_task(task.task_id))[0]
        assert event.payload == {"from": "queued", "to": "blocked"}
        assert event.message == "task status changed: queued -> blocked"


class TestValidation:
    @pytest.mark.parametrize("title", ["", "   "])
    async def test_empty_title(self, stores, orchestrator, title):
        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.create_task(title)
        assert exc_info.value.field == "title"
        assert await stores.task_store.list_tasks() == []

    async def test_title_stripped_and_truncated(self, orchestrator):
        task = await orchestrator.create_task("  " + "x" * 250 + "  ")
        assert task.title == "x" * 200

    async def test_bad_priority(self, orchestrator):
        with pytest.raises(ValidationError):
            await orchestrator.create_task("t", priority="critical")

    async def test_bad_worker_type(self, orchestrator):
        task = await orchestrator.create_task("t")
        with pytest.raises(ValidationError):
            await orchestrator.assign(task.task_id, "wizard")


class TestAtomicity:
    async def test_event_failure_rolls_back_mutation(self, stores, orchestrator, monkeypatch):
        task = await orchestrator.create_task("回滚")

        async def broken_append(event):
            raise RuntimeError("event log unavailable")

        monkeypatch.setattr(stores.event_store, "append_event", broken_append)

        with pytest.raises(RuntimeError):
            await orchestrator.change_status(task.task_id, "running")
        with pytest.raises(RuntimeError):
            await orchestrator.create_task("不会落库")

        monkeypatch.undo()
        assert (await orchestrator.get_task(task.task_id)).status == TaskStatus.QUEUED
        assert len(await stores.task_store.list_tasks()) == 1

    async def test_claim_event_failure_leaves_no_claim(
        self, stores, orchestrator, workers, monkeypatch
    ):
        task = await orchestrator.create_task("领取回滚")

        async def broken_append(event):
            raise RuntimeError("event log unavailable")

        monkeypatch.setattr(stores.event_store, "append_event", broken_append)
        with pytest.raises(RuntimeError):
            await orchestrator.claim(task.task_id, "w1")
        monkeypatch.undo()

        assert await stores.claim_store.get_open(task.task_id) is None
        # 回滚后可以正常领取
        await orchestrator.claim(task.task_id, "w1")


class TestActorAndCorrelation:
    async def test_actor_and_correlation_recorded(self, stores):
        orchestrator = TaskOrchestrator(
            stores,
            Actor(actor_type="ui", actor_id="dashboard"),
            correlation_id="req-123",
        )
        task = await orchestrator.create_task("来自 UI")

        assert task.source == TaskSource.UI
        event = (await stores.event_store.get_events_for_task(task.task_id))[0]
        assert event.actor_type == ActorType.UI
        assert event.actor_id == "dashboard"
        assert event.correlation_id == "req-123"

    async def test_heartbeat_event_uses_worker_actor(self, stores, orchestrator):
        await orchestrator.heartbeat("w7", ["coder"])
        event = (await stores.event_store.list_recent_events())[0]
        assert event.actor_type == ActorType.WORKER
        assert event.actor_id == "w7"


class TestResolution:
    @pytest.fixture
    def fixed_ids(self, monkeypatch):
        ids = iter(
            [
                "abc11111-0000-4000-8000-000000000001",
                "abc22222-0000-4000-8000-000000000002",
                "abc11111-0000-4000-8000-000000000003",
            ]
        )
        monkeypatch.setattr(orchestrator_module, "_new_task_id", lambda: next(ids))

    async def test_unique_prefix(self, orchestrator, fixed_ids):
        await orchestrator.create_task("一")
        second = await orchestrator.create_task("二")
        assert (await orchestrator.get_task("abc2")).task_id == second.task_id

    async def test_exact_id_beats_longer_ids(self, orchestrator, monkeypatch):
        ids = iter(["abc", "abcd-1", "abce-2"])
        monkeypatch.setattr(orchestrator_module, "_new_task_id", lambda: next(ids))
        for title in ("一", "二", "三"):
            await orchestrator.create_task(title)

        assert (await orchestrator.get_task("abc")).title == "一"
        assert (await orchestrator.get_task("abcd")).task_id == "abcd-1"

    async def test_uppercase_id_not_found(self, orchestrator):
        task = await orchestrator.create_task("大小写")
        with pytest.raises(NotFoundError):
            await orchestrator.get_task(task.task_id.upper())

    async def test_ambiguous_prefix(self, orchestrator, fixed_ids):
        await orchestrator.create_task("一")
        await orchestrator.create_task("二")

        with pytest.raises(NotFoundError) as exc_info:
            await orchestrator.change_status("abc", "running")
        assert exc_info.value.ambiguous is True
        assert "ambiguous" in exc_info.value.message

    async def test_unknown_task(self, orchestrator):
        with pytest.raises(NotFoundError) as exc_info:
            await orchestrator.claim("deadbeef-missing", "w1")
        assert exc_info.value.ambiguous is False
        # 错误信息只暴露 8 位短 ID
        assert exc_info.value.message == "task not found: deadbeef"
