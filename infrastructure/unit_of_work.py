"""SQLAlchemy 事务边界：一个 UoW 一个 AsyncSession"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.event_repository import SQLAlchemyEventRepository
from infrastructure.repositories.ticket_repository import SQLAlchemyTicketRepository
from infrastructure.repositories.wallet_repository import SQLAlchemyWalletRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    写模式显式 BEGIN，退出时提交或回滚；只读模式依赖会话自动开启的事务，
    关闭会话即结束。仓储只在 async with 块内可用。
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        self.session = self._session_factory()
        if not self._readonly:
            await self.session.begin()
        self.event_repository = SQLAlchemyEventRepository(self.session)
        self.ticket_repository = SQLAlchemyTicketRepository(self.session)
        self.wallet_repository = SQLAlchemyWalletRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            session, self.session = self.session, None
            if session is not None:
                await session.close()

    async def commit(self) -> None:
        if not self._readonly and self.session is not None and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()


def uow_factory_for(session_factory: Callable[[], AsyncSession]) -> Callable[..., SQLAlchemyUnitOfWork]:
    """绑定会话工厂，返回可传给应用服务的 uow_factory"""
    def _factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory, readonly=readonly)
    return _factory
