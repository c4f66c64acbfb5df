"""支付服务商错误（超时和 5xx 另行以 TransientUpstreamFailure 表达）"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


def _provider_details(provider: str, extra: Optional[dict], **fields) -> dict:
    details = {"provider": provider, **{k: v for k, v in fields.items() if v is not None}}
    details.update(extra or {})
    return details


class PaymentProviderError(BusinessException):
    """服务商明确拒绝了请求（4xx 或 status=false）"""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: Optional[str] = None,
        http_status: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=_provider_details(provider, details, provider_code=provider_code, http_status=http_status),
            message_key="payment.provider.error",
        )


class PaymentSignatureError(BusinessException):
    """回调签名缺失或不匹配"""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=_provider_details(provider, details),
            message_key="payment.signature.invalid",
        )
