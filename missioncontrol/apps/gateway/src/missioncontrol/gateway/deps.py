"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store / Facade 实例

StoreGroup 通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Depends, Request
from missioncontrol.core.models import ActorType
from missioncontrol.core.orchestrator import Actor, TaskOrchestrator
from missioncontrol.core.store import StoreGroup

# dashboard 发起的写操作统一记为 ui
UI_ACTOR = Actor(actor_type=ActorType.UI)


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_orchestrator(
    request: Request,
    store_group: StoreGroup = Depends(get_store_group),
) -> TaskOrchestrator:
    """以 ui 身份构造 Facade，request_id 作为事件 correlation_id"""
    return TaskOrchestrator(
        store_group,
        UI_ACTOR,
        correlation_id=getattr(request.state, "request_id", None),
    )
