"""
票据仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List, Tuple
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from domain.common.money import Money
from domain.ticket.entity import Ticket, TicketStatus, TicketPaymentStatus
from domain.ticket.repository import TicketRepository
from infrastructure.models.ticket import TicketModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyTicketRepository(TicketRepository):
    """票据仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TicketModel) -> Ticket:
        """将数据库模型转换为领域实体"""
        return Ticket(
            id=model.id,
            ticket_number=model.ticket_number,
            event_id=model.event_id,
            user_id=model.user_id,
            price=Money(int(model.price), model.currency),
            payment_reference=model.payment_reference,
            quantity=model.quantity,
            buyer_email=model.buyer_email,
            qr_payload=model.qr_payload,
            payment_status=TicketPaymentStatus(model.payment_status),
            status=TicketStatus(model.status),
            purchase_date=model.purchase_date,
            used_at=model.used_at,
            cancelled_at=model.cancelled_at,
            refunded_amount=Money(int(model.refunded_amount), model.currency) if model.refunded_amount is not None else None,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Ticket) -> TicketModel:
        """将领域实体转换为数据库模型"""
        return TicketModel(
            id=entity.id,
            ticket_number=entity.ticket_number,
            event_id=entity.event_id,
            user_id=entity.user_id,
            buyer_email=entity.buyer_email,
            quantity=entity.quantity,
            price=entity.price.amount,
            currency=entity.price.currency,
            refunded_amount=entity.refunded_amount.amount if entity.refunded_amount else None,
            qr_payload=entity.qr_payload,
            payment_reference=entity.payment_reference,
            payment_status=entity.payment_status.value,
            status=entity.status.value,
            purchase_date=entity.purchase_date,
            used_at=entity.used_at,
            cancelled_at=entity.cancelled_at,
            created_at=entity.created_at or datetime.now(timezone.utc),
        )

    async def add_if_absent(self, ticket: Ticket) -> Tuple[Ticket, bool]:
        """在 SAVEPOINT 中插入；唯一键冲突只回滚本次插入并返回已有票据"""
        db_ticket = self._to_model(ticket)
        try:
            async with self.session.begin_nested():
                self.session.add(db_ticket)
                await self.session.flush()
        except IntegrityError:
            existing = await self.get_by_payment_reference(ticket.payment_reference)
            if existing is None:
                raise
            logger.info(
                "ticket_insert_conflict",
                payment_reference=ticket.payment_reference,
                ticket_id=existing.id,
            )
            return existing, False
        logger.info("ticket_inserted", ticket_id=db_ticket.id, payment_reference=db_ticket.payment_reference)
        return self._to_entity(db_ticket), True

    async def _get_one(self, *criteria) -> Optional[Ticket]:
        result = await self.session.execute(
            select(TicketModel).where(*criteria).execution_options(populate_existing=True)
        )
        db_ticket = result.scalar_one_or_none()
        return self._to_entity(db_ticket) if db_ticket else None

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        return await self._get_one(TicketModel.id == ticket_id)

    async def get_by_number(self, ticket_number: str) -> Optional[Ticket]:
        return await self._get_one(TicketModel.ticket_number == ticket_number)

    async def get_by_payment_reference(self, reference: str) -> Optional[Ticket]:
        return await self._get_one(TicketModel.payment_reference == reference)

    async def list_by_user(self, user_id: int, skip: int = 0, limit: int = 100) -> List[Ticket]:
        result = await self.session.execute(
            select(TicketModel)
            .where(TicketModel.user_id == user_id)
            .order_by(TicketModel.created_at.desc(), TicketModel.id)
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_event(
        self,
        event_id: int,
        *,
        payment_status: Optional[TicketPaymentStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Ticket]:
        query = select(TicketModel).where(TicketModel.event_id == event_id)
        if payment_status is not None:
            query = query.where(TicketModel.payment_status == payment_status.value)
        result = await self.session.execute(
            query.order_by(TicketModel.created_at, TicketModel.id).offset(skip).limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update_if_state(
        self,
        ticket: Ticket,
        *,
        expected_status: TicketStatus,
        expected_payment_status: TicketPaymentStatus,
    ) -> bool:
        stmt = (
            update(TicketModel)
            .where(
                TicketModel.id == ticket.id,
                TicketModel.status == expected_status.value,
                TicketModel.payment_status == expected_payment_status.value,
            )
            .values(
                status=ticket.status.value,
                payment_status=ticket.payment_status.value,
                used_at=ticket.used_at,
                cancelled_at=ticket.cancelled_at,
                refunded_amount=ticket.refunded_amount.amount if ticket.refunded_amount else None,
                updated_at=ticket.updated_at or datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        applied = result.rowcount == 1
        if not applied:
            logger.warning(
                "ticket_state_conflict",
                ticket_id=ticket.id,
                expected_status=expected_status.value,
                expected_payment_status=expected_payment_status.value,
            )
        return applied
