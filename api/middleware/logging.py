"""
访问日志中间件

每个请求一条 request_completed 记录（路由模板、状态码、duration_ms），
可选附带脱敏后的 JSON 请求体。支付回调的原始报文用于验签，从不记录。
"""
import json
import time
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

SKIP_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})
WEBHOOK_PATH_PREFIX = "/api/v1/payments/webhooks/"
MASKED_FIELDS = frozenset({"email", "qr_payload", "token", "authorization", "secret"})


def scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: "***" if k.lower() in MASKED_FIELDS else scrub(v) for k, v in value.items()}
    if isinstance(value, list):
        return [scrub(v) for v in value]
    return value


def route_template(request: Request) -> str:
    # /api/v1/tickets/{ticket_id}/cancel 而不是具体 ID，便于聚合
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class LoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.log_body = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT and settings.DEBUG
        self.max_body_bytes = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in SKIP_PATHS:
            return await call_next(request)

        fields: dict = {"method": request.method}
        if self._wants_body(request):
            body = await self._json_body(request)
            if body is not None:
                fields["body"] = body

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                path=route_template(request),
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
                error_type=type(exc).__name__,
                exc_info=True,
                **fields,
            )
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 1)
        status_code = response.status_code
        log = logger.info if status_code < 400 else logger.warning if status_code < 500 else logger.error
        log("request_completed", path=route_template(request), status_code=status_code, duration_ms=duration_ms, **fields)
        return response

    def _wants_body(self, request: Request) -> bool:
        if request.method not in ("POST", "PUT", "PATCH"):
            return False
        if request.url.path.startswith(WEBHOOK_PATH_PREFIX):
            return False
        if "application/json" not in request.headers.get("content-type", ""):
            return False
        override = (request.headers.get("X-Log-Body") or "").lower()
        if override in ("1", "true", "yes"):
            return True
        if override in ("0", "false", "no"):
            return False
        return self.log_body

    async def _json_body(self, request: Request) -> Any:
        raw = (await request.body())[: self.max_body_bytes]
        if not raw:
            return None
        try:
            return scrub(json.loads(raw))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return {"truncated": True, "bytes": len(raw)}
