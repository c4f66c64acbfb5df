"""
活动领域实体（仅包含售票流程需要的部分）
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.money import Money


class EventStatus(str, Enum):
    """活动状态枚举"""
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Event:
    """
    活动聚合（部分）

    业务规则：
    1. 0 <= available_tickets <= total_tickets
    2. 票价以最小货币单位保存
    3. 库存只能通过 InventoryLedger 的原子操作修改
    """

    id: Optional[int]
    title: str
    ticket_price: Money
    total_tickets: int
    available_tickets: int
    date: datetime
    status: EventStatus = EventStatus.PUBLISHED
    creator_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.total_tickets < 0:
            raise DomainValidationException("total_tickets cannot be negative", field="total_tickets")
        if not 0 <= self.available_tickets <= self.total_tickets:
            raise DomainValidationException(
                f"available_tickets must be within [0, {self.total_tickets}]: {self.available_tickets}",
                field="available_tickets",
            )
        self.date = ensure_utc(self.date)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def currency(self) -> str:
        return self.ticket_price.currency

    def is_on_sale(self) -> bool:
        return self.status == EventStatus.PUBLISHED

    def is_cancelled(self) -> bool:
        return self.status == EventStatus.CANCELLED

    def has_passed(self, now: Optional[datetime] = None) -> bool:
        return self.date < (ensure_utc(now) or datetime.now(timezone.utc))

    def price_for(self, quantity: int) -> Money:
        return self.ticket_price.times(quantity)
