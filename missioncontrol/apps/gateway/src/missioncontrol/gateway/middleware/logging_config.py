"""Gateway 日志配置

structlog 事件与标准库 logging（uvicorn、aiosqlite）走同一个 root handler，
每条记录都带 service 字段，便于与 mcctl / worker 的日志区分。
请求级日志由 LoggingMiddleware 输出，因此 uvicorn.access 被压到 WARNING。
"""

import logging

import structlog
from missioncontrol.core.config import get_log_format, get_log_level

SERVICE_NAME = "mission-control-gateway"

# 第三方 logger 的级别下限
_QUIET_LOGGERS: dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


def _add_service(
    logger: object, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 gateway 日志

    Args:
        log_format: "json" 或 "dev"，缺省读 MISSION_CONTROL_LOG_FORMAT
        log_level: 日志级别名，缺省读 MISSION_CONTROL_LOG_LEVEL（INFO）
    """
    log_format = (log_format or get_log_format()).lower()
    level = logging.getLevelNamesMapping().get(
        (log_level or get_log_level()).upper(), logging.INFO
    )

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if log_format == "json":
        # JSON 下异常展开为结构化字段
        pre_chain.append(structlog.processors.dict_tracebacks)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(log_format),
            foreign_pre_chain=pre_chain,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # uvicorn 在调用 app factory 前已装好自己的 handler，这里改为统一经 root 输出
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    for name, floor in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(floor, level))
