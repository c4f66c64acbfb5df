"""
Base payment client implementing shared concerns: http, retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import (
    OpenSession,
    GatewaySession,
    GatewayTransaction,
    WebhookEvent,
)
from application.ports.payment_gateway import PaymentGateway
from domain.common.exceptions import TransientUpstreamFailure
from domain.payment.entity import GatewayStatus
from infrastructure.external.payments.exceptions import PaymentProviderError
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)


_IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
# 请求尚未发出的错误；只有这些对非幂等请求（如创建收款会话）可以重试
_NOT_SENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


class BasePaymentClient(PaymentGateway):
    provider: str = "base"
    base_url: str = ""

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    def _default_headers(self) -> dict[str, str]:
        return {}

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeouts,
                headers=self._default_headers(),
                transport=self._transport,
            )
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        带重试的 HTTP 调用；超时/传输错误/5xx 最终映射为 TransientUpstreamFailure

        幂等请求在超时、传输错误与 5xx 时重试；非幂等请求仅在连接阶段失败时重试，
        避免请求已送达后重复创建会话
        """
        if method.upper() in _IDEMPOTENT_METHODS:
            retry_on = (httpx.TimeoutException, httpx.TransportError, _RetryableStatus)
        else:
            retry_on = _NOT_SENT_ERRORS

        async def _once() -> httpx.Response:
            async with self.client() as http:
                resp = await http.request(method, path, **kwargs)
            if resp.status_code >= 500:
                raise _RetryableStatus(resp)
            return resp

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
                wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
                retry=retry_if_exception_type(retry_on),
                reraise=True,
            ):
                with attempt:
                    return await _once()
        except httpx.TimeoutException as exc:
            self._log("payment_gateway_timeout", path=path)
            raise TransientUpstreamFailure(self.provider, "Payment gateway timed out") from exc
        except httpx.TransportError as exc:
            self._log("payment_gateway_transport_error", path=path, error=str(exc))
            raise TransientUpstreamFailure(self.provider, "Payment gateway unreachable") from exc
        except _RetryableStatus as exc:
            self._log("payment_gateway_5xx", path=path, status_code=exc.response.status_code)
            raise TransientUpstreamFailure(
                self.provider, "Payment gateway error", details={"status_code": exc.response.status_code}
            ) from exc

    def _json(self, resp: httpx.Response) -> dict[str, Any]:
        try:
            body = resp.json()
        except ValueError as exc:
            raise PaymentProviderError(
                "Invalid JSON from payment provider", provider=self.provider,
                details={"status_code": resp.status_code},
            ) from exc
        if not isinstance(body, dict):
            raise PaymentProviderError("Unexpected payload from payment provider", provider=self.provider)
        return body

    # Default implementations raise to force override where needed
    async def open_session(self, req: OpenSession) -> GatewaySession:  # type: ignore[override]
        raise NotImplementedError

    async def get_status(self, reference: str) -> GatewayTransaction:  # type: ignore[override]
        raise NotImplementedError

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: str) -> GatewayStatus:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        # 未知状态按 pending 处理，绝不视为成功
        return GatewayStatus(mapping.get((provider_status or "").lower(), GatewayStatus.PENDING.value))

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
