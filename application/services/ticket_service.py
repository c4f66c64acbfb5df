"""
票据应用服务 - 入场核验、用户取消、票据查询
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional

from application.dto import CancelResultDTO, TicketDTO, VerificationResultDTO
from application.services.ticket_cache import TicketListCache, user_tickets_key, event_tickets_key, event_key
from application.services.ticket_codes import TicketCodec
from core.logging_config import get_logger
from domain.common.exceptions import (
    EventNotFoundException,
    EventOrganizerRequiredException,
    InvalidTicketTransitionException,
    TicketAlreadyUsedException,
    TicketNotFoundException,
    TicketOwnershipException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.event.inventory import InventoryLedger
from domain.ticket.entity import Ticket, TicketPaymentStatus, TicketStatus


logger = get_logger(__name__)


class TicketApplicationService:
    """票据应用服务"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        codec: TicketCodec,
        list_cache: Optional[TicketListCache] = None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._uow_factory = uow_factory
        self._codec = codec
        self._list_cache = list_cache or TicketListCache(None)
        self._clock = clock

    async def _find_by_code(self, uow: AbstractUnitOfWork, code: str) -> Ticket:
        """先按票号查找，再按已验签的二维码载荷查找"""
        ticket = await uow.ticket_repository.get_by_number(code)
        if ticket is not None:
            return ticket
        payload = self._codec.decode(code)
        if payload is not None:
            ticket = await uow.ticket_repository.get_by_id(payload["ticketId"])
            if ticket is not None and ticket.ticket_number == payload["ticketNumber"]:
                return ticket
        raise TicketNotFoundException(ticket_number=code if payload is None else payload["ticketNumber"])

    async def verify_ticket(self, code: str) -> VerificationResultDTO:
        """
        入场核验

        - used: 报告 AlreadyUsed，不做修改
        - cancelled / expired / 未支付: 无效
        - 活动已过: confirmed 惰性转为 expired
        - 其余 confirmed: 转为 used 并记录 used_at
        """
        now = self._clock()
        async with self._uow_factory() as uow:
            ticket = await self._find_by_code(uow, code)
            if ticket.status == TicketStatus.USED:
                raise TicketAlreadyUsedException(ticket.ticket_number, ticket.used_at)
            if ticket.status == TicketStatus.CANCELLED:
                return VerificationResultDTO(is_valid=False, message="Ticket has been cancelled", ticket=TicketDTO.from_entity(ticket))
            if ticket.status == TicketStatus.EXPIRED:
                return VerificationResultDTO(is_valid=False, message="Ticket has expired", ticket=TicketDTO.from_entity(ticket))

            event = await uow.event_repository.get_by_id(ticket.event_id)
            if event is None:
                raise EventNotFoundException(ticket.event_id)

            if event.has_passed(now):
                if ticket.status == TicketStatus.CONFIRMED:
                    ticket.expire(now=now)
                    await uow.ticket_repository.update_if_state(
                        ticket,
                        expected_status=TicketStatus.CONFIRMED,
                        expected_payment_status=ticket.payment_status,
                    )
                    logger.info("ticket_expired", ticket_id=ticket.id, event_id=event.id)
                return VerificationResultDTO(is_valid=False, message="Ticket has expired", ticket=TicketDTO.from_entity(ticket))

            if ticket.payment_status != TicketPaymentStatus.SUCCESSFUL:
                return VerificationResultDTO(is_valid=False, message="Payment not completed", ticket=TicketDTO.from_entity(ticket))
            if ticket.status != TicketStatus.CONFIRMED:
                return VerificationResultDTO(is_valid=False, message="Ticket is not confirmed", ticket=TicketDTO.from_entity(ticket))

            ticket.mark_used(event.date, now=now)
            applied = await uow.ticket_repository.update_if_state(
                ticket,
                expected_status=TicketStatus.CONFIRMED,
                expected_payment_status=TicketPaymentStatus.SUCCESSFUL,
            )
            if not applied:
                # 并发扫码：另一方已先完成状态变更
                raise TicketAlreadyUsedException(ticket.ticket_number)

        logger.info("ticket_verified", ticket_id=ticket.id, ticket_number=ticket.ticket_number)
        await self._list_cache.invalidate(user_tickets_key(ticket.user_id), event_tickets_key(ticket.event_id))
        return VerificationResultDTO(is_valid=True, message="Ticket verified successfully", ticket=TicketDTO.from_entity(ticket))

    async def cancel_ticket(self, ticket_id: str, user_id: int) -> CancelResultDTO:
        """用户取消票据；已消耗库存的票据按 quantity 归还库存"""
        now = self._clock()
        async with self._uow_factory() as uow:
            ticket = await uow.ticket_repository.get_by_id(ticket_id)
            if ticket is None:
                raise TicketNotFoundException(ticket_id)
            if not ticket.is_owned_by(user_id):
                raise TicketOwnershipException(ticket_id)
            event = await uow.event_repository.get_by_id(ticket.event_id)
            if event is None:
                raise EventNotFoundException(ticket.event_id)

            previous_status = ticket.status
            previous_payment = ticket.payment_status
            ticket.cancel(event.date, now=now)
            applied = await uow.ticket_repository.update_if_state(
                ticket,
                expected_status=previous_status,
                expected_payment_status=previous_payment,
            )
            if not applied:
                raise InvalidTicketTransitionException(
                    ticket.id, previous_status.value, TicketStatus.CANCELLED.value,
                    "Ticket state changed concurrently",
                )

            released = 0
            # pending 票据从未扣减库存
            if previous_status == TicketStatus.CONFIRMED:
                if await InventoryLedger(uow.event_repository).release(ticket.event_id, ticket.quantity):
                    released = ticket.quantity
                else:
                    logger.error("inventory_release_rejected", ticket_id=ticket.id, event_id=ticket.event_id, quantity=ticket.quantity)

        logger.info("ticket_cancelled", ticket_id=ticket.id, user_id=user_id, released=released)
        await self._list_cache.invalidate(
            user_tickets_key(user_id), event_tickets_key(ticket.event_id), event_key(ticket.event_id)
        )
        return CancelResultDTO(ticket=TicketDTO.from_entity(ticket), released_quantity=released)

    async def get_ticket(self, ticket_id: str, user_id: int) -> TicketDTO:
        async with self._uow_factory(readonly=True) as uow:
            ticket = await uow.ticket_repository.get_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFoundException(ticket_id)
        if not ticket.is_owned_by(user_id):
            raise TicketOwnershipException(ticket_id)
        return TicketDTO.from_entity(ticket)

    async def get_ticket_by_reference(self, reference: str, user_id: int) -> TicketDTO:
        async with self._uow_factory(readonly=True) as uow:
            ticket = await uow.ticket_repository.get_by_payment_reference(reference)
        if ticket is None:
            raise TicketNotFoundException()
        if not ticket.is_owned_by(user_id):
            raise TicketOwnershipException(ticket.id)
        return TicketDTO.from_entity(ticket)

    async def list_user_tickets(self, user_id: int) -> List[TicketDTO]:
        key = user_tickets_key(user_id)
        cached = await self._list_cache.read(key)
        if cached is not None:
            return [TicketDTO.model_validate(item) for item in cached]
        async with self._uow_factory(readonly=True) as uow:
            tickets = await uow.ticket_repository.list_by_user(user_id)
        result = [TicketDTO.from_entity(t) for t in tickets]
        await self._list_cache.write(key, [r.model_dump(mode="json") for r in result])
        return result

    async def list_event_tickets(self, event_id: int, organizer_id: Optional[int] = None) -> List[TicketDTO]:
        """活动售出票据；给出 organizer_id 时校验主办方身份"""
        if organizer_id is not None:
            async with self._uow_factory(readonly=True) as uow:
                event = await uow.event_repository.get_by_id(event_id)
            if event is None:
                raise EventNotFoundException(event_id)
            if event.creator_id != organizer_id:
                raise EventOrganizerRequiredException(event_id)
        key = event_tickets_key(event_id)
        cached = await self._list_cache.read(key)
        if cached is not None:
            return [TicketDTO.model_validate(item) for item in cached]
        async with self._uow_factory(readonly=True) as uow:
            tickets = await uow.ticket_repository.list_by_event(event_id)
        result = [TicketDTO.from_entity(t) for t in tickets]
        await self._list_cache.write(key, [r.model_dump(mode="json") for r in result])
        return result
