"""
活动仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from domain.common.money import Money
from domain.event.entity import Event, EventStatus
from domain.event.repository import EventRepository
from infrastructure.models.event import EventModel


class SQLAlchemyEventRepository(EventRepository):
    """活动仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: EventModel) -> Event:
        """将数据库模型转换为领域实体"""
        return Event(
            id=model.id,
            title=model.title,
            ticket_price=Money(int(model.ticket_price), model.currency),
            total_tickets=model.total_tickets,
            available_tickets=model.available_tickets,
            date=model.date,
            status=EventStatus(model.status),
            creator_id=model.creator_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Event) -> EventModel:
        """将领域实体转换为数据库模型"""
        return EventModel(
            id=entity.id,
            title=entity.title,
            ticket_price=entity.ticket_price.amount,
            currency=entity.ticket_price.currency,
            total_tickets=entity.total_tickets,
            available_tickets=entity.available_tickets,
            date=entity.date,
            status=entity.status.value,
            creator_id=entity.creator_id,
        )

    async def get_by_id(self, event_id: int) -> Optional[Event]:
        # populate_existing：条件 UPDATE 绕过了 identity map，读取时强制刷新
        result = await self.session.execute(
            select(EventModel)
            .where(EventModel.id == event_id)
            .execution_options(populate_existing=True)
        )
        db_event = result.scalar_one_or_none()
        return self._to_entity(db_event) if db_event else None

    async def create(self, event: Event) -> Event:
        db_event = self._to_model(event)
        self.session.add(db_event)
        await self.session.flush()
        await self.session.refresh(db_event)
        return self._to_entity(db_event)

    async def decrement_available(self, event_id: int, quantity: int) -> bool:
        """UPDATE ... SET available = available - n WHERE id = ? AND available >= n"""
        stmt = (
            update(EventModel)
            .where(EventModel.id == event_id, EventModel.available_tickets >= quantity)
            .values(
                available_tickets=EventModel.available_tickets - quantity,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def increment_available(self, event_id: int, quantity: int) -> bool:
        """UPDATE ... SET available = available + n WHERE id = ? AND available + n <= total"""
        stmt = (
            update(EventModel)
            .where(
                EventModel.id == event_id,
                EventModel.available_tickets + quantity <= EventModel.total_tickets,
            )
            .values(
                available_tickets=EventModel.available_tickets + quantity,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
