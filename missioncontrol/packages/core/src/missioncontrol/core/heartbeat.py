"""HeartbeatLoop -- worker 侧周期心跳

以 asyncio 后台任务运行：立即发送一次心跳，之后每隔 interval 秒发送一次，
直到 stop() 被调用。单次心跳失败只记录日志，循环继续。
"""

import asyncio
from collections.abc import Iterable

import structlog

from .config import get_heartbeat_interval
from .models import WorkerStatus, WorkerType
from .orchestrator import Actor, TaskOrchestrator
from .store import StoreGroup
from .store.worker_store import parse_worker_types

log = structlog.get_logger()


class HeartbeatLoop:
    """worker 心跳后台循环

    Example:
        loop = HeartbeatLoop(stores, "w1", ["coder"])
        loop.start()
        ...
        await loop.stop()
    """

    def __init__(
        self,
        stores: StoreGroup,
        worker_id: str,
        worker_types: Iterable[WorkerType | str],
        interval: float | None = None,
        status: WorkerStatus | str = WorkerStatus.ONLINE,
    ) -> None:
        self._orchestrator = TaskOrchestrator(
            stores,
            Actor(actor_type="worker", actor_id=worker_id),
        )
        self.worker_id = worker_id
        # 启动前校验，避免后台循环里反复失败
        self.worker_types = parse_worker_types(worker_types)
        self.interval = interval if interval is not None else get_heartbeat_interval()
        self.status = status
        self.beats = 0
        self.failures = 0
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """启动后台任务；重复调用返回同一个任务"""
        if self.running:
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name=f"heartbeat-{self.worker_id}")
        log.info(
            "heartbeat_started",
            worker_id=self.worker_id,
            interval=self.interval,
        )
        return self._task

    async def stop(self) -> None:
        """请求停止并等待当前一次心跳结束"""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        log.info(
            "heartbeat_stopped",
            worker_id=self.worker_id,
            beats=self.beats,
            failures=self.failures,
        )

    async def beat_once(self) -> bool:
        """发送一次心跳，返回是否成功"""
        try:
            await self._orchestrator.heartbeat(self.worker_id, self.worker_types, self.status)
        except Exception as e:
            self.failures += 1
            log.error(
                "heartbeat_failed",
                worker_id=self.worker_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False
        self.beats += 1
        return True

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await self.beat_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except TimeoutError:
                continue
