"""
InventoryLedger - 活动余票账本

所有修改都委托给仓储的单条条件 UPDATE，绝不在应用内先读后写。
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    InsufficientInventoryException,
    InventoryExhaustedException,
)
from domain.event.entity import Event
from domain.event.repository import EventRepository


def _check_quantity(quantity: int) -> None:
    if quantity < 1:
        raise DomainValidationException("Quantity must be at least 1", field="quantity")


class InventoryLedger:
    def __init__(self, event_repository: EventRepository):
        self._events = event_repository

    @staticmethod
    def ensure_available(event: Event, quantity: int) -> None:
        """发起购买时的软检查（不占用库存）"""
        _check_quantity(quantity)
        if event.available_tickets < quantity:
            raise InsufficientInventoryException(event.id, quantity, event.available_tickets)

    async def reserve(self, event_id: int, quantity: int, *, reference: Optional[str] = None) -> None:
        """出票时的原子扣减；失败抛出 InventoryExhaustedException"""
        _check_quantity(quantity)
        if not await self._events.decrement_available(event_id, quantity):
            raise InventoryExhaustedException(event_id, quantity, reference=reference)

    async def release(self, event_id: int, quantity: int) -> bool:
        """取消/退款时归还库存；会突破总量的归还被拒绝并返回 False"""
        _check_quantity(quantity)
        return await self._events.increment_available(event_id, quantity)
