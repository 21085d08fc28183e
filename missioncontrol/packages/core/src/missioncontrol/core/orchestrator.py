"""TaskOrchestrator -- 编排 Facade，所有写操作的唯一入口

每个操作在一个事务内同时改动 TaskStore / AssignmentStore / ClaimStore /
WorkerStore，并在同一事务内追加描述变更的事件：
1. 解析任务（完整 ID 或唯一前缀）
2. 修改各 Store 的状态
3. 追加一条或多条事件
4. 提交；任一步失败整体回滚
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from .config import TITLE_MAX_LENGTH
from .exceptions import ConflictError, ValidationError
from .models import (
    ActorType,
    Assignment,
    Claim,
    Event,
    EventLevel,
    EventType,
    Priority,
    StatusChangedPayload,
    Task,
    TaskAssignedPayload,
    TaskCanceledPayload,
    TaskClaimedPayload,
    TaskCreatedPayload,
    TaskReleasedPayload,
    TaskSource,
    TaskStatus,
    TaskUpdatedPayload,
    Worker,
    WorkerHeartbeatPayload,
    WorkerStatus,
    WorkerType,
    is_terminal,
    parse_enum,
)
from .store import StoreGroup
from .store.common import dump_json, utc_now

log = structlog.get_logger()


class Actor(BaseModel):
    """操作发起方 -- 写入事件的 actor_type / actor_id"""

    actor_type: ActorType = Field(default=ActorType.ORCHESTRATOR)
    actor_id: str | None = Field(default=None)

    def as_tuple(self) -> tuple[ActorType, str | None]:
        return self.actor_type, self.actor_id


@dataclass
class StartedTask:
    """start_task 的结果：一个已在执行中的任务"""

    task: Task
    assignment: Assignment
    claim: Claim


@dataclass
class CompletedTask:
    """complete_task 的结果"""

    task: Task
    released: Claim | None
    from_status: TaskStatus
    to_status: TaskStatus


_DEFAULT_SOURCE = {
    ActorType.UI: TaskSource.UI,
    ActorType.ORCHESTRATOR: TaskSource.CLI,
    ActorType.WORKER: TaskSource.CLI,
}


class TaskOrchestrator:
    """编排 Facade"""

    def __init__(
        self,
        stores: StoreGroup,
        actor: Actor | None = None,
        correlation_id: str | None = None,
    ) -> None:
        self._stores = stores
        self._actor = actor or Actor()
        self._correlation_id = correlation_id

    # ------------------------------------------------------------------
    # 任务创建
    # ------------------------------------------------------------------

    async def create_task(
        self,
        title: str,
        description: str | None = None,
        priority: Priority | str = Priority.NORMAL,
        source: TaskSource | str | None = None,
        requester: str | None = None,
        tags: Iterable[str] = (),
        meta: str | None = None,
    ) -> Task:
        """创建任务（状态 queued）并写入 task.created"""
        task = self._build_task(title, description, priority, source, requester, tags, meta)
        async with self._stores.transaction():
            await self._stores.task_store.create_task(task)
            await self._append_task_created(task)

        log.info("task_created", task_id=task.short_id, priority=task.priority.value)
        return task

    async def create_and_assign(
        self,
        title: str,
        worker_type: WorkerType | str,
        worker_id: str | None = None,
        description: str | None = None,
        priority: Priority | str = Priority.NORMAL,
        source: TaskSource | str | None = None,
        requester: str | None = None,
        tags: Iterable[str] = (),
        meta: str | None = None,
        note: str | None = None,
    ) -> tuple[Task, Assignment]:
        """创建任务并直接分配给 worker 类型（可选指定 worker）"""
        task = self._build_task(title, description, priority, source, requester, tags, meta)
        async with self._stores.transaction():
            await self._stores.task_store.create_task(task)
            await self._append_task_created(task)
            assignment, superseded = await self._stores.assignment_store.assign(
                task.task_id,
                worker_type,
                worker_id,
                assigned_by=self._actor.as_tuple(),
                note=note,
            )
            await self._append_task_assigned(assignment, superseded)

        log.info(
            "task_created",
            task_id=task.short_id,
            worker_type=assignment.worker_type.value,
            worker_id=assignment.worker_id,
        )
        return task, assignment

    # ------------------------------------------------------------------
    # 分配 / 领取 / 释放
    # ------------------------------------------------------------------

    async def assign(
        self,
        task_ref: str,
        worker_type: WorkerType | str,
        worker_id: str | None = None,
        note: str | None = None,
    ) -> Assignment:
        """将任务（重新）分配给 worker 类型，旧 active assignment 同事务内被 superseded"""
        async with self._stores.transaction():
            task = await self._resolve(task_ref)
            assignment, superseded = await self._stores.assignment_store.assign(
                task.task_id,
                worker_type,
                worker_id,
                assigned_by=self._actor.as_tuple(),
                note=note,
            )
            await self._append_task_assigned(assignment, superseded)

        log.info(
            "task_assigned",
            task_id=task.short_id,
            worker_type=assignment.worker_type.value,
            worker_id=assignment.worker_id,
            superseded=superseded is not None,
        )
        return assignment

    async def claim(self, task_ref: str, worker_id: str) -> Claim:
        """worker 领取任务；已有 open claim 时抛出 ConflictError

        不改变任务状态，状态推进由调用方通过 change_status 表达。
        """
        async with self._stores.transaction():
            task = await self._resolve(task_ref)
            claim = await self._stores.claim_store.claim(task.task_id, worker_id)
            await self._append(
                EventType.TASK_CLAIMED,
                f"task claimed by worker: {worker_id}",
                TaskClaimedPayload(claim_id=claim.claim_id, worker_id=worker_id),
                task_id=task.task_id,
            )

        log.info("task_claimed", task_id=task.short_id, worker_id=worker_id)
        return claim

    async def release(self, task_ref: str, worker_id: str | None = None) -> Claim | None:
        """释放任务的 open claim

        按任务释放：worker_id 仅记录在事件中，不校验是否为持有者。
        没有 open claim 时返回 None，且不写 task.released 事件。
        """
        async with self._stores.transaction():
            task = await self._resolve(task_ref)
            released = await self._stores.claim_store.release(task.task_id, worker_id)
            if released is not None:
                await self._append_task_released(released, worker_id)

        if released is None:
            log.info("task_release_noop", task_id=task.short_id)
        else:
            log.info(
                "task_released",
                task_id=task.short_id,
                worker_id=released.worker_id,
                requested_by=worker_id,
            )
        return released

    # ------------------------------------------------------------------
    # 状态 / 优先级 / 元数据
    # ------------------------------------------------------------------

    async def change_status(
        self,
        task_ref: str,
        new_status: TaskStatus | str,
    ) -> tuple[TaskStatus, TaskStatus]:
        """覆盖写入任务状态并写入 task.status_changed {from, to}"""
        async with self._stores.transaction():
            task = await self._resolve(task_ref)
            from_status, to_status = await self._stores.task_store.set_status(
                task.task_id, new_status
            )
            await self._append_status_changed(task.task_id, from_status, to_status)

        log.info(
            "task_status_changed",
            task_id=task.short_id,
            from_status=from_status.value,
            to_status=to_status.value,
        )
        return from_status, to_status

    async def change_priority(
        self,
        task_ref: str,
        priority: Priority | str,
    ) -> tuple[Priority, Priority]:
        """更新优先级并写入 task.updated"""
        async with self._stores.transaction():
            task = await self._resolve(task_ref)
            from_priority, to_priority = await self._stores.task_store.set_priority(
                task.task_id, priority
            )
            await self._append(
                EventType.TASK_UPDATED,
                f"task priority changed: {from_priority} -> {to_priority}",
                TaskUpdatedPayload(
                    field="priority",
                    from_value=from_priority.value,
                    to_value=to_priority.value,
                ),
                task_id=task.task_id,
            )

        log.info(
            "task_priority_changed",
            task_id=task.short_id,
            from_priority=from_priority.value,
            to_priority=to_priority.value,
        )
        return from_priority, to_priority

    async def change_meta(self, task_ref: str, meta: str | None) -> Task:
        """覆盖任务的不透明元数据并写入 task.updated（payload 不含元数据内容）"""
        async with self._stores.transaction():
            task = await self._resolve(task_ref)
            await self._stores.task_store.set_meta(task.task_id, meta)
            await self._append(
                EventType.TASK_UPDATED,
                "task metadata updated",
                TaskUpdatedPayload(field="meta"),
                task_id=task.task_id,
            )
            updated = await self._stores.task_store.require_task(task.task_id)

        log.info("task_meta_changed", task_id=task.short_id)
        return updated

    # ------------------------------------------------------------------
    # 取消
    # ------------------------------------------------------------------

    async def cancel(self, task_ref: str) -> Task:
        """取消非终态任务：状态 -> canceled，active assignment -> canceled

        open claim 不会被自动释放，需要调用方另行 release。

        Raises:
            ConflictError: 任务已处于终态
        """
        async with self._stores.transaction():
            task = await self._resolve(task_ref)
            if is_terminal(task.status):
                raise ConflictError(
                    f"task {task.short_id} is already in terminal state: {task.status.value}"
                )
            from_status, _ = await self._stores.task_store.set_status(
                task.task_id, TaskStatus.CANCELED
            )
            canceled = await self._stores.assignment_store.cancel(task.task_id)
            await self._append(
                EventType.TASK_CANCELED,
                "task canceled",
                TaskCanceledPayload(
                    from_status=from_status,
                    assignment_id=canceled.assignment_id if canceled else None,
                ),
                task_id=task.task_id,
            )
            updated = await self._stores.task_store.require_task(task.task_id)

        log.info(
            "task_canceled",
            task_id=task.short_id,
            from_status=from_status.value,
            assignment_canceled=canceled is not None,
        )
        return updated

    # ------------------------------------------------------------------
    # 运维便捷操作
    # ------------------------------------------------------------------

    async def start_task(
        self,
        worker_id: str,
        title: str,
        description: str | None = None,
        priority: Priority | str = Priority.NORMAL,
        worker_type: WorkerType | str = WorkerType.CODER,
        source: TaskSource | str | None = None,
        requester: str | None = None,
        tags: Iterable[str] = (),
    ) -> StartedTask:
        """单事务内构造一个已在执行中的任务（回填/演示数据）

        worker 不存在时先注册，然后创建 running 任务、active assignment、open claim，
        并写入 task.created / task.assigned / task.claimed 三条事件。
        """
        worker_type = parse_enum(WorkerType, worker_type, "worker_type")
        task = self._build_task(title, description, priority, source, requester, tags, None)
        task = task.model_copy(update={"status": TaskStatus.RUNNING})

        async with self._stores.transaction():
            await self._stores.worker_store.ensure_registered(worker_id)
            await self._stores.task_store.create_task(task)
            await self._append_task_created(task)

            actor_label = self._actor.actor_id or self._actor.actor_type.value
            assignment, superseded = await self._stores.assignment_store.assign(
                task.task_id,
                worker_type,
                worker_id,
                assigned_by=self._actor.as_tuple(),
                note=f"started via {actor_label}",
            )
            await self._append_task_assigned(assignment, superseded)

            claim = await self._stores.claim_store.claim(
                task.task_id,
                worker_id,
                meta=dump_json({"source": actor_label}),
            )
            await self._append(
                EventType.TASK_CLAIMED,
                f"task claimed by worker: {worker_id}",
                TaskClaimedPayload(claim_id=claim.claim_id, worker_id=worker_id),
                task_id=task.task_id,
            )

        log.info(
            "task_started",
            task_id=task.short_id,
            worker_id=worker_id,
            worker_type=worker_type.value,
        )
        return StartedTask(task=task, assignment=assignment, claim=claim)

    async def complete_task(
        self,
        worker_id: str,
        task_ref: str,
        status: TaskStatus | str = TaskStatus.DONE,
    ) -> CompletedTask:
        """worker 完成任务：释放 claim + 写入最终状态

        即使没有 open claim 也会更新状态（人工清理场景）；
        仅当确有 claim 被释放时才写 task.released。
        """
        to_status = parse_enum(TaskStatus, status, "status")
        async with self._stores.transaction():
            task = await self._resolve(task_ref)
            released = await self._stores.claim_store.release(task.task_id, worker_id)
            if released is not None:
                await self._append_task_released(released, worker_id)
            from_status, to_status = await self._stores.task_store.set_status(
                task.task_id, to_status
            )
            await self._append_status_changed(task.task_id, from_status, to_status)
            updated = await self._stores.task_store.require_task(task.task_id)

        log.info(
            "task_completed",
            task_id=task.short_id,
            worker_id=worker_id,
            to_status=to_status.value,
            released=released is not None,
        )
        return CompletedTask(
            task=updated,
            released=released,
            from_status=from_status,
            to_status=to_status,
        )

    # ------------------------------------------------------------------
    # Worker 心跳
    # ------------------------------------------------------------------

    async def heartbeat(
        self,
        worker_id: str,
        worker_types: Iterable[WorkerType | str],
        status: WorkerStatus | str = WorkerStatus.ONLINE,
        meta: str | None = None,
    ) -> Worker:
        """worker 心跳（兼注册）：幂等 upsert + 无任务归属的 worker.heartbeat 事件"""
        async with self._stores.transaction():
            worker = await self._stores.worker_store.upsert_heartbeat(
                worker_id, worker_types, status, meta
            )
            await self._append(
                EventType.WORKER_HEARTBEAT,
                f"worker heartbeat: {worker_id}",
                WorkerHeartbeatPayload(
                    worker_types=worker.worker_types,
                    status=worker.status,
                ),
                actor=Actor(actor_type=ActorType.WORKER, actor_id=worker_id),
            )

        log.debug("worker_heartbeat", worker_id=worker_id, status=worker.status.value)
        return worker

    # ------------------------------------------------------------------
    # 读取辅助
    # ------------------------------------------------------------------

    async def get_task(self, task_ref: str) -> Task:
        """按完整 ID 或唯一前缀读取任务，两次查询处于同一读事务

        Raises:
            NotFoundError: 不存在或前缀有歧义
        """
        async with self._stores.transaction(immediate=False):
            return await self._resolve(task_ref)

    # ------------------------------------------------------------------
    # 内部实现
    # ------------------------------------------------------------------

    async def _resolve(self, task_ref: str) -> Task:
        """解析任务引用，需在事务内调用"""
        return await self._stores.task_store.resolve(task_ref)

    def _build_task(
        self,
        title: str,
        description: str | None,
        priority: Priority | str,
        source: TaskSource | str | None,
        requester: str | None,
        tags: Iterable[str],
        meta: str | None,
    ) -> Task:
        title = (title or "").strip()
        if not title:
            raise ValidationError("title", "title is required")

        if source is None:
            source = _DEFAULT_SOURCE[self._actor.actor_type]
        now = utc_now()
        return Task(
            task_id=_new_task_id(),
            created_at=now,
            updated_at=now,
            title=title[:TITLE_MAX_LENGTH],
            description=description,
            source=parse_enum(TaskSource, source, "source"),
            requester=requester,
            status=TaskStatus.QUEUED,
            priority=parse_enum(Priority, priority or Priority.NORMAL, "priority"),
            tags=[tag for tag in tags if isinstance(tag, str) and tag.strip()],
            meta=meta,
        )

    async def _append(
        self,
        event_type: EventType,
        message: str,
        payload: BaseModel | None,
        task_id: str | None = None,
        actor: Actor | None = None,
        level: EventLevel = EventLevel.INFO,
    ) -> Event:
        """在当前事务内追加一条事件"""
        actor = actor or self._actor
        task_seq = None
        if task_id is not None:
            task_seq = await self._stores.event_store.get_next_task_seq(task_id)
        event = Event(
            event_id=str(ULID()),
            created_at=utc_now(),
            task_id=task_id,
            task_seq=task_seq,
            actor_type=actor.actor_type,
            actor_id=actor.actor_id,
            level=level,
            type=event_type,
            message=message,
            correlation_id=self._correlation_id,
            payload=(
                payload.model_dump(mode="json", by_alias=True) if payload is not None else None
            ),
        )
        await self._stores.event_store.append_event(event)
        return event

    async def _append_task_created(self, task: Task) -> Event:
        return await self._append(
            EventType.TASK_CREATED,
            f"task created: {task.title}",
            TaskCreatedPayload(
                title=task.title,
                priority=task.priority,
                description=task.description,
                source=task.source.value,
            ),
            task_id=task.task_id,
        )

    async def _append_task_assigned(
        self,
        assignment: Assignment,
        superseded: str | None,
    ) -> Event:
        target = assignment.worker_type.value
        if assignment.worker_id:
            target = f"{target} ({assignment.worker_id})"
        return await self._append(
            EventType.TASK_ASSIGNED,
            f"task assigned: {target}",
            TaskAssignedPayload(
                assignment_id=assignment.assignment_id,
                worker_type=assignment.worker_type,
                worker_id=assignment.worker_id,
                superseded_assignment_id=superseded,
            ),
            task_id=assignment.task_id,
        )

    async def _append_task_released(self, released: Claim, requested_by: str | None) -> Event:
        return await self._append(
            EventType.TASK_RELEASED,
            f"task claim released by worker: {released.worker_id}",
            TaskReleasedPayload(
                claim_id=released.claim_id,
                worker_id=released.worker_id,
                requested_by=requested_by,
            ),
            task_id=released.task_id,
        )

    async def _append_status_changed(
        self,
        task_id: str,
        from_status: TaskStatus,
        to_status: TaskStatus,
    ) -> Event:
        return await self._append(
            EventType.TASK_STATUS_CHANGED,
            f"task status changed: {from_status} -> {to_status}",
            StatusChangedPayload(from_status=from_status, to_status=to_status),
            task_id=task_id,
        )


def _new_task_id() -> str:
    # uuid4 而非 ULID：ULID 前缀是时间戳，短 ID 前 8 位会频繁重复
    return str(uuid.uuid4())


__all__ = [
    "Actor",
    "CompletedTask",
    "StartedTask",
    "TaskOrchestrator",
]
