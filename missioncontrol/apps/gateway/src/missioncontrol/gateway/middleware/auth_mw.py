"""BasicAuthMiddleware -- 可选的 HTTP Basic 认证门禁

BASIC_AUTH_USER 与 BASIC_AUTH_PASS 同时配置时生效，否则放行所有请求。
/health 始终放行，供存活探针使用。
认证失败统一返回 401（而非 403），浏览器会重新弹出登录框。
"""

import base64
import binascii
import os
import secrets

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

log = structlog.get_logger()

WWW_AUTHENTICATE = 'Basic realm="Mission Control", charset="UTF-8"'

PUBLIC_PATHS = frozenset({"/health"})


def load_credentials() -> tuple[str, str] | None:
    """读取 Basic 认证凭据，任一缺失时返回 None（不启用门禁）"""
    user = os.environ.get("BASIC_AUTH_USER")
    password = os.environ.get("BASIC_AUTH_PASS")
    if not user or not password:
        return None
    return user, password


def parse_basic_header(header: str | None) -> tuple[str, str] | None:
    """解析 Authorization: Basic <base64(user:pass)>，格式非法返回 None"""
    if not header or not header.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(header[len("Basic ") :], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    user, _, password = decoded.partition(":")
    return user, password


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Basic 认证中间件"""

    def __init__(self, app: ASGIApp, credentials: tuple[str, str] | None = None) -> None:
        super().__init__(app)
        self._credentials = credentials

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if self._credentials is None or request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        supplied = parse_basic_header(request.headers.get("authorization"))
        if supplied is None or not self._matches(supplied):
            log.warning("auth_rejected", path=request.url.path)
            return JSONResponse(
                status_code=401,
                content={"error": {"code": "UNAUTHORIZED", "message": "auth required"}},
                headers={"WWW-Authenticate": WWW_AUTHENTICATE},
            )
        return await call_next(request)

    def _matches(self, supplied: tuple[str, str]) -> bool:
        user, password = self._credentials
        # 用户名与密码都参与比较，不短路
        user_ok = secrets.compare_digest(supplied[0].encode(), user.encode())
        pass_ok = secrets.compare_digest(supplied[1].encode(), password.encode())
        return user_ok and pass_ok
