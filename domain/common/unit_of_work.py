"""
事务边界

一个 UoW 对应一次数据库事务，暴露票务三个聚合的仓储。
正常退出自动提交（只读或已提交除外），异常退出回滚。
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.event.repository import EventRepository
from domain.ticket.repository import TicketRepository
from domain.wallet.repository import WalletRepository


class AbstractUnitOfWork(ABC):
    event_repository: EventRepository
    ticket_repository: TicketRepository
    wallet_repository: WalletRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._readonly = readonly
        self._committed = False

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            await self.rollback()
        elif not (self._readonly or self._committed):
            await self.commit()

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...
