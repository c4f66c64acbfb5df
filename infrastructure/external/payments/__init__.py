"""支付网关适配器；按服务商名称取实现"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import PaymentGateway
from core.settings import payment_settings


def get_payment_gateway(provider: Optional[str] = None) -> PaymentGateway:
    name = (provider or payment_settings.default_provider).strip().lower()
    if name != "paystack":
        raise ValueError(f"Unsupported payment provider: {name}")
    from .paystack_client import PaystackClient

    return PaystackClient()
