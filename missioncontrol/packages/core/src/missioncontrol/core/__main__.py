"""CLI 入口模块 -- python -m missioncontrol.core <command>

运维命令行（mcctl）：手工推进任务生命周期、模拟 worker、查询读模型。
所有写操作以 orchestrator/mcctl 身份经由 TaskOrchestrator 执行。

输出为 JSON（stdout）；日志写 stderr，默认只输出 WARNING 以上。
退出码：0 成功，2 输入非法，3 不存在，4 状态冲突。
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import BaseModel

from .config import (
    get_activity_window_days,
    get_db_path,
    get_heartbeat_interval,
    get_log_level,
)
from .exceptions import ConflictError, MissionControlError, NotFoundError, ValidationError
from .heartbeat import HeartbeatLoop
from .models import Priority, TaskStatus, WorkerStatus, WorkerType
from .orchestrator import Actor, TaskOrchestrator
from .read_models import (
    completed_by_worker,
    count_tasks_by_status,
    events_for_task,
    list_task_overview,
    list_worker_overview,
    worker_daily_completions,
)
from .store import StoreGroup, create_store_group
from .store.sqlite_init import verify_wal_mode

CLI_ACTOR = Actor(actor_type="orchestrator", actor_id="mcctl")

EXIT_OK = 0
EXIT_VALIDATION = 2
EXIT_NOT_FOUND = 3
EXIT_CONFLICT = 4

_EXIT_CODES: dict[type[MissionControlError], int] = {
    ValidationError: EXIT_VALIDATION,
    NotFoundError: EXIT_NOT_FOUND,
    ConflictError: EXIT_CONFLICT,
}

Handler = Callable[[StoreGroup, argparse.Namespace], Awaitable[Any]]


# ----------------------------------------------------------------------
# 命令实现
# ----------------------------------------------------------------------


async def cmd_health(stores: StoreGroup, args: argparse.Namespace) -> dict:
    return {
        "ok": True,
        "db_path": args.db_path,
        "wal_mode": await verify_wal_mode(stores.conn),
    }


async def cmd_create_task(stores: StoreGroup, args: argparse.Namespace) -> dict:
    orchestrator = TaskOrchestrator(stores, CLI_ACTOR)
    fields = {
        "title": args.title,
        "description": args.description,
        "priority": args.priority,
        "requester": args.requester,
        "tags": _split_csv(args.tags),
    }
    if args.worker_type:
        task, assignment = await orchestrator.create_and_assign(
            worker_type=args.worker_type,
            worker_id=args.worker,
            note=args.note,
            **fields,
        )
        return {"task": task, "assignment": assignment}
    task = await orchestrator.create_task(**fields)
    return {"task": task}


async def cmd_set_status(stores: StoreGroup, args: argparse.Namespace) -> dict:
    from_status, to_status = await TaskOrchestrator(stores, CLI_ACTOR).change_status(
        args.id, args.status
    )
    return {"ok": True, "from": from_status, "to": to_status}


async def cmd_set_priority(stores: StoreGroup, args: argparse.Namespace) -> dict:
    from_priority, to_priority = await TaskOrchestrator(stores, CLI_ACTOR).change_priority(
        args.id, args.priority
    )
    return {"ok": True, "from": from_priority, "to": to_priority}


async def cmd_assign(stores: StoreGroup, args: argparse.Namespace) -> dict:
    assignment = await TaskOrchestrator(stores, CLI_ACTOR).assign(
        args.id, args.worker_type, args.worker, note=args.note
    )
    return {"assignment": assignment}


async def cmd_claim(stores: StoreGroup, args: argparse.Namespace) -> dict:
    claim = await TaskOrchestrator(stores, CLI_ACTOR).claim(args.id, args.worker)
    return {"claim": claim}


async def cmd_release(stores: StoreGroup, args: argparse.Namespace) -> dict:
    released = await TaskOrchestrator(stores, CLI_ACTOR).release(args.id, args.worker)
    return {"released": released is not None, "claim": released}


async def cmd_cancel(stores: StoreGroup, args: argparse.Namespace) -> dict:
    task = await TaskOrchestrator(stores, CLI_ACTOR).cancel(args.id)
    return {"task": task}


async def cmd_heartbeat(stores: StoreGroup, args: argparse.Namespace) -> dict:
    worker = await TaskOrchestrator(stores, CLI_ACTOR).heartbeat(
        args.worker, _split_csv(args.types), args.status
    )
    return {"worker": worker}


async def cmd_start_task(stores: StoreGroup, args: argparse.Namespace) -> dict:
    started = await TaskOrchestrator(stores, CLI_ACTOR).start_task(
        worker_id=args.worker,
        title=args.title,
        description=args.description,
        priority=args.priority,
        worker_type=args.worker_type,
    )
    return {
        "task": started.task,
        "assignment": started.assignment,
        "claim": started.claim,
    }


async def cmd_complete_task(stores: StoreGroup, args: argparse.Namespace) -> dict:
    completed = await TaskOrchestrator(stores, CLI_ACTOR).complete_task(
        args.worker, args.task_id, args.status
    )
    return {
        "ok": True,
        "task_id": completed.task.task_id,
        "from": completed.from_status,
        "to": completed.to_status,
        "released": completed.released is not None,
    }


async def cmd_tasks(stores: StoreGroup, args: argparse.Namespace) -> dict:
    async with stores.transaction(immediate=False) as conn:
        rows = await list_task_overview(conn, status=args.status, limit=args.limit)
    return {"tasks": rows}


async def cmd_workers(stores: StoreGroup, args: argparse.Namespace) -> dict:
    async with stores.transaction(immediate=False) as conn:
        rows = await list_worker_overview(conn, limit=args.limit)
    return {"workers": rows}


async def cmd_events(stores: StoreGroup, args: argparse.Namespace) -> dict:
    if args.id:
        events = await events_for_task(stores, args.id, limit=args.limit)
    else:
        async with stores.transaction(immediate=False):
            events = await stores.event_store.list_recent_events(limit=args.limit)
    return {"events": events}


async def cmd_stats(stores: StoreGroup, args: argparse.Namespace) -> dict:
    async with stores.transaction(immediate=False) as conn:
        result: dict[str, Any] = {
            "by_status": await count_tasks_by_status(conn),
            "completed_by_worker": await completed_by_worker(conn),
        }
        if args.worker:
            result["worker"] = args.worker
            result["daily"] = await worker_daily_completions(conn, args.worker, days=args.days)
    return result


async def cmd_worker_loop(stores: StoreGroup, args: argparse.Namespace) -> dict:
    heartbeat = HeartbeatLoop(
        stores,
        args.worker,
        _split_csv(args.types),
        interval=args.interval,
        status=args.status,
    )
    if args.count:
        # 有限次数：前台逐次发送
        for i in range(args.count):
            if i:
                await asyncio.sleep(heartbeat.interval)
            await heartbeat.beat_once()
    else:
        task = heartbeat.start()
        try:
            await task
        finally:
            await heartbeat.stop()
    return {
        "worker_id": heartbeat.worker_id,
        "beats": heartbeat.beats,
        "failures": heartbeat.failures,
    }


# ----------------------------------------------------------------------
# 参数解析
# ----------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcctl",
        description="Mission Control CLI",
    )
    parser.add_argument(
        "--db-path",
        default=None,
        help="SQLite 数据库路径（默认 MISSION_CONTROL_DB_PATH）",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("health", help="检查数据库可用")
    p.set_defaults(handler=cmd_health)

    p = sub.add_parser("create-task", help="创建任务（可选直接分配）")
    p.add_argument("--title", required=True)
    p.add_argument("--description")
    p.add_argument("--priority", default=Priority.NORMAL.value, choices=_values(Priority))
    p.add_argument("--requester")
    p.add_argument("--tags", help="逗号分隔")
    p.add_argument("--worker-type", choices=_values(WorkerType))
    p.add_argument("--worker", help="指定 worker 实例（需配合 --worker-type）")
    p.add_argument("--note")
    p.set_defaults(handler=cmd_create_task)

    p = sub.add_parser("set-status", help="覆盖写入任务状态")
    p.add_argument("--id", required=True, help="任务 ID 或唯一前缀")
    p.add_argument("--status", required=True, choices=_values(TaskStatus))
    p.set_defaults(handler=cmd_set_status)

    p = sub.add_parser("set-priority", help="修改优先级")
    p.add_argument("--id", required=True)
    p.add_argument("--priority", required=True, choices=_values(Priority))
    p.set_defaults(handler=cmd_set_priority)

    p = sub.add_parser("assign", help="分配（或重新分配）任务")
    p.add_argument("--id", required=True)
    p.add_argument("--worker-type", required=True, choices=_values(WorkerType))
    p.add_argument("--worker")
    p.add_argument("--note")
    p.set_defaults(handler=cmd_assign)

    p = sub.add_parser("claim", help="worker 领取任务")
    p.add_argument("--id", required=True)
    p.add_argument("--worker", required=True)
    p.set_defaults(handler=cmd_claim)

    p = sub.add_parser("release", help="释放任务的 open claim")
    p.add_argument("--id", required=True)
    p.add_argument("--worker")
    p.set_defaults(handler=cmd_release)

    p = sub.add_parser("cancel", help="取消非终态任务")
    p.add_argument("--id", required=True)
    p.set_defaults(handler=cmd_cancel)

    p = sub.add_parser("heartbeat", help="发送一次 worker 心跳")
    p.add_argument("--worker", required=True)
    p.add_argument("--types", default="", help="逗号分隔，例如 coder,researcher")
    p.add_argument("--status", default=WorkerStatus.ONLINE.value, choices=_values(WorkerStatus))
    p.set_defaults(handler=cmd_heartbeat)

    p = sub.add_parser("start-task", help="创建 running 任务 + 分配 + 领取")
    p.add_argument("--worker", required=True)
    p.add_argument("--title", required=True)
    p.add_argument("--description")
    p.add_argument("--priority", default=Priority.NORMAL.value, choices=_values(Priority))
    p.add_argument(
        "--worker-type", default=WorkerType.CODER.value, choices=_values(WorkerType)
    )
    p.set_defaults(handler=cmd_start_task)

    p = sub.add_parser("complete-task", help="释放 claim 并写入最终状态")
    p.add_argument("--worker", required=True)
    p.add_argument("--task-id", required=True)
    p.add_argument("--status", default=TaskStatus.DONE.value, choices=_values(TaskStatus))
    p.set_defaults(handler=cmd_complete_task)

    p = sub.add_parser("tasks", help="任务列表")
    p.add_argument("--status", choices=_values(TaskStatus))
    p.add_argument("--limit", type=int)
    p.set_defaults(handler=cmd_tasks)

    p = sub.add_parser("workers", help="worker 列表")
    p.add_argument("--limit", type=int)
    p.set_defaults(handler=cmd_workers)

    p = sub.add_parser("events", help="任务事件（省略 --id 时为全局事件流）")
    p.add_argument("--id")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(handler=cmd_events)

    p = sub.add_parser("stats", help="按状态计数 + 完成数统计")
    p.add_argument("--worker", help="附带该 worker 的每日完成数")
    p.add_argument("--days", type=int, default=get_activity_window_days())
    p.set_defaults(handler=cmd_stats)

    p = sub.add_parser("worker-loop", help="前台运行 worker 心跳循环")
    p.add_argument("--worker", default=os.environ.get("WORKER_ID", "local-worker-1"))
    p.add_argument("--types", default=os.environ.get("WORKER_TYPES", "coder"))
    p.add_argument("--status", default=WorkerStatus.ONLINE.value, choices=_values(WorkerStatus))
    p.add_argument("--interval", type=float, default=get_heartbeat_interval())
    p.add_argument("--count", type=int, default=0, help="发送次数，0 表示直到中断")
    p.set_defaults(handler=cmd_worker_loop)

    return parser


# ----------------------------------------------------------------------
# 入口
# ----------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI 主入口，返回退出码"""
    parser = build_parser()
    args = parser.parse_args(argv)
    args.db_path = args.db_path or get_db_path()
    _configure_logging()

    try:
        result = asyncio.run(_run(args.handler, args))
    except MissionControlError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return _EXIT_CODES.get(type(e), 1)
    except KeyboardInterrupt:
        return EXIT_OK

    print(json.dumps(_to_jsonable(result), indent=2, ensure_ascii=False))
    return EXIT_OK


async def _run(handler: Handler, args: argparse.Namespace) -> Any:
    stores = await create_store_group(args.db_path)
    try:
        return await handler(stores, args)
    finally:
        await stores.close()


def _configure_logging() -> None:
    """日志写 stderr，保持 stdout 为纯 JSON"""
    level = get_log_level("WARNING")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping().get(level, logging.WARNING)
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_to_jsonable(v) for v in value]
    if isinstance(value, str | int | float | bool) or value is None:
        return value
    return str(value)


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


if __name__ == "__main__":
    sys.exit(main())
