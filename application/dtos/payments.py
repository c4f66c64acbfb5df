"""
Payment DTOs (Pydantic v2) used at the gateway boundary.

Amounts crossing this boundary are always ``Money`` (integer minor units).
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

from domain.common.money import Money
from domain.payment.entity import GatewayStatus


class OpenSession(BaseModel):
    buyer_email: EmailStr
    amount: Money
    metadata: dict[str, Any] = {}
    callback_url: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("amount")
    @classmethod
    def _positive_amount(cls, v: Money) -> Money:
        if v.amount <= 0:
            raise ValueError("amount must be greater than zero")
        return v


class GatewaySession(BaseModel):
    reference: str
    redirect_url: str
    access_code: Optional[str] = None
    provider: str


class GatewayTransaction(BaseModel):
    reference: str
    status: GatewayStatus
    amount: Money
    paid_at: Optional[datetime] = None
    provider: str
    provider_status: Optional[str] = None
    customer_email: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def succeeded(self) -> bool:
        return self.status == GatewayStatus.SUCCESS


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any]
    # raw fields for traceability (optional)
    raw_headers: Optional[dict[str, Any]] = None
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def reference(self) -> Optional[str]:
        return self.data.get("reference")
