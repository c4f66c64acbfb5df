"""
票据领域实体 - 票据聚合根与状态机
"""
from __future__ import annotations

import secrets
import string
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException, InvalidTicketTransitionException
from domain.common.money import Money
from domain.event.entity import ensure_utc


class TicketStatus(str, Enum):
    """票据状态枚举"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    USED = "used"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class TicketPaymentStatus(str, Enum):
    """票据支付状态枚举"""
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    REFUNDED = "refunded"


# 合法状态转换；used/cancelled/expired 为终态
ALLOWED_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.PENDING: frozenset({TicketStatus.CONFIRMED, TicketStatus.CANCELLED}),
    TicketStatus.CONFIRMED: frozenset({TicketStatus.USED, TicketStatus.CANCELLED, TicketStatus.EXPIRED}),
    TicketStatus.USED: frozenset(),
    TicketStatus.CANCELLED: frozenset(),
    TicketStatus.EXPIRED: frozenset(),
}

_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def generate_ticket_number() -> str:
    """TKT-<毫秒时间戳base36>-<6位随机大写字符>"""
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"TKT-{stamp}-{suffix}"


@dataclass
class Ticket:
    """
    票据聚合根

    业务规则：
    1. 每个 payment_reference 只对应一张票据
    2. 状态转换必须遵循 ALLOWED_TRANSITIONS
    3. 退款同时设置 status=cancelled 与 payment_status=refunded
    4. quantity 为该票据覆盖的入场人数，取消/退款时按此归还库存
    """

    id: str
    ticket_number: str
    event_id: int
    user_id: int
    price: Money  # 单价（实际支付）
    payment_reference: str
    quantity: int = 1
    buyer_email: Optional[str] = None
    qr_payload: Optional[str] = None
    payment_status: TicketPaymentStatus = TicketPaymentStatus.PENDING
    status: TicketStatus = TicketStatus.PENDING
    purchase_date: Optional[datetime] = None
    used_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_amount: Optional[Money] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.quantity < 1:
            raise DomainValidationException("Ticket quantity must be at least 1", field="quantity")
        if not self.payment_reference:
            raise DomainValidationException("payment_reference is required", field="payment_reference")
        self.purchase_date = ensure_utc(self.purchase_date)
        self.used_at = ensure_utc(self.used_at)
        self.cancelled_at = ensure_utc(self.cancelled_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @classmethod
    def issue(
        cls,
        *,
        event_id: int,
        user_id: int,
        unit_price: Money,
        quantity: int,
        payment_reference: str,
        buyer_email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Ticket":
        """支付核实成功后出票：直接进入 confirmed/successful"""
        now = ensure_utc(now) or datetime.now(timezone.utc)
        ticket = cls(
            id=str(uuid.uuid4()),
            ticket_number=generate_ticket_number(),
            event_id=event_id,
            user_id=user_id,
            price=unit_price,
            quantity=quantity,
            payment_reference=payment_reference,
            buyer_email=buyer_email,
            purchase_date=now,
            created_at=now,
            updated_at=now,
        )
        ticket.confirm(now=now)
        return ticket

    @property
    def total_paid(self) -> Money:
        return self.price.times(self.quantity)

    def _transition(self, target: TicketStatus, *, reason: Optional[str] = None) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTicketTransitionException(self.id, self.status.value, target.value, reason)
        self.status = target

    def confirm(self, now: Optional[datetime] = None) -> None:
        self._transition(TicketStatus.CONFIRMED)
        self.payment_status = TicketPaymentStatus.SUCCESSFUL
        self.updated_at = ensure_utc(now) or datetime.now(timezone.utc)

    def mark_used(self, event_date: datetime, now: Optional[datetime] = None) -> None:
        """入场核验：仅 confirmed 且已支付、活动未结束的票可用"""
        now = ensure_utc(now) or datetime.now(timezone.utc)
        if self.payment_status != TicketPaymentStatus.SUCCESSFUL:
            raise InvalidTicketTransitionException(
                self.id, self.status.value, TicketStatus.USED.value, "Payment not completed"
            )
        if ensure_utc(event_date) < now:
            raise InvalidTicketTransitionException(
                self.id, self.status.value, TicketStatus.USED.value, "Event has already passed"
            )
        self._transition(TicketStatus.USED)
        self.used_at = now
        self.updated_at = now

    def expire(self, now: Optional[datetime] = None) -> None:
        self._transition(TicketStatus.EXPIRED)
        self.updated_at = ensure_utc(now) or datetime.now(timezone.utc)

    def cancel(self, event_date: datetime, now: Optional[datetime] = None) -> None:
        """
        用户取消

        业务规则：已使用、已取消、活动日期已过均不可取消
        """
        now = ensure_utc(now) or datetime.now(timezone.utc)
        if self.status == TicketStatus.USED:
            raise InvalidTicketTransitionException(
                self.id, self.status.value, TicketStatus.CANCELLED.value, "Cannot cancel used ticket"
            )
        if self.status == TicketStatus.CANCELLED:
            raise InvalidTicketTransitionException(
                self.id, self.status.value, TicketStatus.CANCELLED.value, "Ticket already cancelled"
            )
        if ensure_utc(event_date) < now:
            raise InvalidTicketTransitionException(
                self.id, self.status.value, TicketStatus.CANCELLED.value,
                "Cannot cancel ticket for past event",
            )
        self._transition(TicketStatus.CANCELLED)
        self.cancelled_at = now
        self.updated_at = now

    def mark_refunded(self, amount: Money, now: Optional[datetime] = None) -> None:
        """退款：status 与 payment_status 同时变更"""
        if self.payment_status != TicketPaymentStatus.SUCCESSFUL:
            raise InvalidTicketTransitionException(
                self.id, self.status.value, TicketStatus.CANCELLED.value,
                f"Cannot refund ticket with payment status {self.payment_status.value}",
            )
        now = ensure_utc(now) or datetime.now(timezone.utc)
        self._transition(TicketStatus.CANCELLED)
        self.payment_status = TicketPaymentStatus.REFUNDED
        self.refunded_amount = amount
        self.cancelled_at = now
        self.updated_at = now

    def is_owned_by(self, user_id: int) -> bool:
        return self.user_id == user_id
