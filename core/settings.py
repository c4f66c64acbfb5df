"""
支付服务商配置

与 core.config 分开加载，便于单独轮换网关凭据。环境变量示例：
PAYSTACK__SECRET_KEY、PAYMENT_TIMEOUTS__READ、PAYMENT_WEBHOOK__IP_ALLOWLIST。
"""
from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    # 仅对超时、连接错误和 5xx 重试
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    # 为空表示不限制来源 IP；支持 CIDR
    ip_allowlist: list[str] = []
    # 同一回调事件在该时间窗内只处理一次
    dedupe_ttl_seconds: int = 86400


class PaystackSettings(BaseModel):
    secret_key: Optional[str] = None
    base_url: str = "https://api.paystack.co"
    callback_url: Optional[str] = None


class PaymentSettings(BaseSettings):
    default_provider: str = Field(
        default="paystack",
        validation_alias=AliasChoices("PAYMENT_PROVIDER", "PAYMENT__DEFAULT_PROVIDER"),
    )
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts, validation_alias="PAYMENT_TIMEOUTS")
    retry: PaymentRetry = Field(default_factory=PaymentRetry, validation_alias="PAYMENT_RETRY")
    webhook: WebhookSettings = Field(default_factory=WebhookSettings, validation_alias="PAYMENT_WEBHOOK")
    paystack: PaystackSettings = Field(default_factory=PaystackSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
        populate_by_name=True,
    )


payment_settings = PaymentSettings()
