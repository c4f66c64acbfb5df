"""
支付领域实体 - 支付意向（购买发起到网关确认之间的短期记录）
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.money import Money
from domain.event.entity import ensure_utc


class IntentStatus(str, Enum):
    """支付意向状态枚举"""
    PENDING = "pending"
    FAILED = "failed"


class GatewayStatus(str, Enum):
    """网关权威交易状态（内部统一值）"""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


@dataclass
class PaymentIntent:
    """
    支付意向

    业务规则：
    1. 以网关返回的 reference 为键，写入时带 TTL
    2. 金额以最小货币单位保存，核对网关金额时直接比较
    3. 只有 status 会变化（网关明确失败时置为 failed）
    """

    reference: str
    event_id: int
    user_id: int
    quantity: int
    total_amount: Money
    buyer_email: Optional[str] = None
    status: IntentStatus = IntentStatus.PENDING
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.reference:
            raise DomainValidationException("Payment reference is required", field="reference")
        if self.quantity < 1:
            raise DomainValidationException("Quantity must be at least 1", field="quantity")
        self.created_at = ensure_utc(self.created_at) or datetime.now(timezone.utc)
        self.expires_at = ensure_utc(self.expires_at)

    @classmethod
    def open(
        cls,
        *,
        reference: str,
        event_id: int,
        user_id: int,
        quantity: int,
        total_amount: Money,
        buyer_email: Optional[str],
        ttl_seconds: int,
        now: Optional[datetime] = None,
    ) -> "PaymentIntent":
        now = ensure_utc(now) or datetime.now(timezone.utc)
        return cls(
            reference=reference,
            event_id=event_id,
            user_id=user_id,
            quantity=quantity,
            total_amount=total_amount,
            buyer_email=buyer_email,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )

    @property
    def unit_price(self) -> Money:
        return Money(self.total_amount.amount // self.quantity, self.total_amount.currency)

    def mark_failed(self) -> None:
        self.status = IntentStatus.FAILED

    def remaining_ttl(self, now: Optional[datetime] = None) -> int:
        if self.expires_at is None:
            return 0
        now = ensure_utc(now) or datetime.now(timezone.utc)
        return max(0, int((self.expires_at - now).total_seconds()))

    def to_dict(self) -> dict:
        return {
            "reference": self.reference,
            "eventId": self.event_id,
            "userId": self.user_id,
            "quantity": self.quantity,
            "totalAmount": self.total_amount.amount,
            "currency": self.total_amount.currency,
            "buyerEmail": self.buyer_email,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentIntent":
        created = data.get("createdAt")
        expires = data.get("expiresAt")
        return cls(
            reference=data["reference"],
            event_id=int(data["eventId"]),
            user_id=int(data["userId"]),
            quantity=int(data["quantity"]),
            total_amount=Money(int(data["totalAmount"]), data.get("currency") or "NGN"),
            buyer_email=data.get("buyerEmail"),
            status=IntentStatus(data.get("status") or IntentStatus.PENDING.value),
            created_at=datetime.fromisoformat(created) if created else None,
            expires_at=datetime.fromisoformat(expires) if expires else None,
        )
