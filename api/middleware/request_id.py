"""
请求追踪中间件

每个请求分配（或透传）X-Request-ID，并把 request_id / client_ip 绑定到
structlog 上下文；认证通过后 bind_user_id 追加 user_id。
"""
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


REQUEST_ID_HEADER = "X-Request-ID"
# 客户端透传的 ID 过长时不信任
_MAX_INBOUND_ID_LENGTH = 128


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        inbound = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = inbound if 0 < len(inbound) <= _MAX_INBOUND_ID_LENGTH else uuid.uuid4().hex
        ip = client_ip(request)

        request.state.request_id = request_id
        request.state.client_ip = ip

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, client_ip=ip)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def bind_user_id(user_id: int) -> None:
    """认证成功后把用户ID绑定到日志上下文"""
    structlog.contextvars.bind_contextvars(user_id=user_id)
