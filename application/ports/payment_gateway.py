"""
支付网关端口

应用层只依赖这个协议；Paystack 适配器在 infrastructure/external/payments。
金额一律为最小货币单位（kobo）。网络超时与 5xx 以 TransientUpstreamFailure
抛出，其它拒绝以 PaymentProviderError 抛出。
"""
from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from application.dtos.payments import GatewaySession, GatewayTransaction, OpenSession, WebhookEvent


@runtime_checkable
class PaymentGateway(Protocol):
    provider: str

    async def open_session(self, req: OpenSession) -> GatewaySession:
        """创建收款会话，返回 reference 与跳转地址"""
        ...

    async def get_status(self, reference: str) -> GatewayTransaction:
        """按 reference 查询交易的权威状态"""
        ...

    def parse_webhook(self, headers: Mapping[str, Any], body: bytes) -> WebhookEvent:
        """验签并解析回调；签名不符抛 PaymentSignatureError"""
        ...
