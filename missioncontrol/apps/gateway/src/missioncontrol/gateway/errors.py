"""领域异常 -> HTTP 响应映射

错误体统一为 {"error": {"code": ..., "message": ...}}：
- ValidationError -> 400
- NotFoundError   -> 404（code 形如 TASK_NOT_FOUND）
- ConflictError   -> 409
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from missioncontrol.core.exceptions import (
    ConflictError,
    MissionControlError,
    NotFoundError,
    ValidationError,
)
from starlette.responses import JSONResponse

log = structlog.get_logger()


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


async def handle_domain_error(request: Request, exc: MissionControlError) -> JSONResponse:
    if isinstance(exc, NotFoundError):
        code = "AMBIGUOUS_ID" if exc.ambiguous else f"{exc.entity.upper()}_NOT_FOUND"
        return error_response(404, code, exc.message)
    if isinstance(exc, ConflictError):
        return error_response(409, exc.code, exc.message)
    if isinstance(exc, ValidationError):
        return error_response(400, exc.code, exc.message)
    log.error("unmapped_domain_error", error_type=type(exc).__name__, error=exc.message)
    return error_response(500, exc.code, exc.message)


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """请求体/参数校验失败同样返回 400 + VALIDATION_ERROR"""
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid request")
    if field:
        message = f"invalid {field}: {message}"
    return error_response(400, ValidationError.code, message)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MissionControlError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
