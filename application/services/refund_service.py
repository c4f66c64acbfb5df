"""
退款应用服务 - 报价、处理单张退款、活动级批量退款

单张退款的票据状态变更、钱包入账与库存归还在同一个事务中完成；
任一步失败整体回滚，调用方可安全重试。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from application.dto import (
    EventRefundSummaryDTO,
    MoneyDTO,
    RefundDeadlineDTO,
    RefundPolicyDTO,
    RefundQuoteDTO,
    RefundResultDTO,
    RefundStatusDTO,
)
from application.ports.notifications import NotificationDispatcher
from application.services.notify import dispatch_safely
from application.services.ticket_cache import TicketListCache, user_tickets_key, event_tickets_key, event_key, wallet_keys
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    EventNotFoundException,
    EventOrganizerRequiredException,
    InvalidTicketTransitionException,
    RefundApprovalRequiredException,
    RefundNotEligibleException,
    TicketNotFoundException,
    TicketOwnershipException,
)
from domain.common.money import Money
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.event.entity import Event
from domain.event.inventory import InventoryLedger
from domain.refund.policy import RefundPolicyEngine
from domain.ticket.entity import Ticket, TicketPaymentStatus, TicketStatus
from domain.wallet.entity import TransactionType, WalletTransaction, refund_reference
from domain.wallet.repository import DuplicateTransactionError


logger = get_logger(__name__)


class RefundApplicationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        notifier: Optional[NotificationDispatcher] = None,
        list_cache: Optional[TicketListCache] = None,
        *,
        policy: Optional[RefundPolicyEngine] = None,
        batch_size: int = 500,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._list_cache = list_cache or TicketListCache(None)
        self._policy = policy or RefundPolicyEngine()
        self._batch_size = batch_size
        self._clock = clock

    async def quote_refund(self, ticket_id: str, user_id: int) -> RefundQuoteDTO:
        """退款报价；主办方未取消活动时需要审批"""
        now = self._clock()
        async with self._uow_factory(readonly=True) as uow:
            ticket = await uow.ticket_repository.get_by_id(ticket_id)
            if ticket is None:
                raise TicketNotFoundException(ticket_id)
            if not ticket.is_owned_by(user_id):
                raise TicketOwnershipException(ticket_id)
            event = await uow.event_repository.get_by_id(ticket.event_id)
            if event is None:
                raise EventNotFoundException(ticket.event_id)

        return self._quote(ticket, event, now)

    def _quote(self, ticket: Ticket, event: Event, now: datetime) -> RefundQuoteDTO:
        outcome = self._policy.evaluate(event.date, ticket.purchase_date, ticket.status, event.status, now=now)
        amount = self._policy.refund_amount(ticket.total_paid, outcome)
        return RefundQuoteDTO(
            ticket_id=ticket.id,
            eligible=outcome.eligible,
            percentage=outcome.percentage,
            amount=MoneyDTO.from_money(amount),
            message=outcome.reason,
            deadline=outcome.deadline,
            requires_approval=outcome.eligible and not event.is_cancelled(),
        )

    async def process_refund(
        self,
        ticket_id: str,
        reason: str,
        *,
        user_id: Optional[int] = None,
    ) -> RefundResultDTO:
        """
        处理单张票据退款

        user_id 为发起人：主办方可直接处理；持票人仅在活动已被主办方取消时可自助退款，
        否则需主办方审批。user_id 为空表示系统发起（如活动级退款），不做权限校验
        """
        now = self._clock()
        async with self._uow_factory() as uow:
            ticket = await uow.ticket_repository.get_by_id(ticket_id)
            if ticket is None:
                raise TicketNotFoundException(ticket_id)
            event = await uow.event_repository.get_by_id(ticket.event_id)
            if event is None:
                raise EventNotFoundException(ticket.event_id)
            if user_id is not None:
                self._authorize_processing(ticket, event, user_id)

            reference = refund_reference(ticket.payment_reference)
            if ticket.payment_status == TicketPaymentStatus.REFUNDED:
                existing = await uow.wallet_repository.get_transaction_by_reference(reference)
                amount = existing.amount if existing else (ticket.refunded_amount or Money.zero(ticket.price.currency))
                return RefundResultDTO(
                    ticket_id=ticket.id,
                    success=True,
                    amount=MoneyDTO.from_money(amount),
                    percentage=int((existing.metadata or {}).get("refundPercentage", 0)) if existing else 0,
                    reference=reference,
                    message="Ticket already refunded",
                    duplicate=True,
                )
            if ticket.payment_status != TicketPaymentStatus.SUCCESSFUL:
                raise RefundNotEligibleException(ticket.id, "Payment not completed")

            # 以当前状态重新判定，早先的报价可能已失效
            outcome = self._policy.evaluate(event.date, ticket.purchase_date, ticket.status, event.status, now=now)
            if not outcome.eligible:
                raise RefundNotEligibleException(ticket.id, outcome.reason)
            amount = self._policy.refund_amount(ticket.total_paid, outcome)

            previous_status = ticket.status
            ticket.mark_refunded(amount, now=now)
            applied = await uow.ticket_repository.update_if_state(
                ticket,
                expected_status=previous_status,
                expected_payment_status=TicketPaymentStatus.SUCCESSFUL,
            )
            if not applied:
                raise InvalidTicketTransitionException(
                    ticket.id, previous_status.value, TicketStatus.CANCELLED.value,
                    "Ticket state changed concurrently",
                )

            if amount.amount > 0:
                try:
                    await uow.wallet_repository.credit(
                        WalletTransaction(
                            id=None,
                            user_id=ticket.user_id,
                            type=TransactionType.REFUND,
                            amount=amount,
                            reference=reference,
                            description=f"Refund for ticket #{ticket.ticket_number} - {event.title}",
                            metadata={
                                "ticketId": ticket.id,
                                "eventId": event.id,
                                "originalAmount": ticket.total_paid.amount,
                                "refundPercentage": outcome.percentage,
                                "reason": reason,
                            },
                            related_ticket_id=ticket.id,
                            related_event_id=event.id,
                            created_at=now,
                        )
                    )
                except DuplicateTransactionError as exc:
                    raise RefundNotEligibleException(ticket.id, "Refund already recorded") from exc

            if previous_status == TicketStatus.CONFIRMED:
                if not await InventoryLedger(uow.event_repository).release(ticket.event_id, ticket.quantity):
                    logger.error("inventory_release_rejected", ticket_id=ticket.id, event_id=ticket.event_id, quantity=ticket.quantity)

        logger.info(
            "refund_processed",
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            user_id=ticket.user_id,
            amount=amount.amount,
            currency=amount.currency,
            percentage=outcome.percentage,
            reference=reference,
        )
        await self._list_cache.invalidate(
            *wallet_keys(ticket.user_id),
            user_tickets_key(ticket.user_id),
            event_tickets_key(ticket.event_id),
            event_key(ticket.event_id),
        )
        if ticket.buyer_email:
            dispatch_safely(
                self._notifier,
                "send_refund_confirmation",
                ticket.buyer_email,
                {
                    "ticketNumber": ticket.ticket_number,
                    "eventTitle": event.title,
                    "amount": amount.amount,
                    "currency": amount.currency,
                    "percentage": outcome.percentage,
                    "reason": reason,
                    "reference": reference,
                },
            )
        return RefundResultDTO(
            ticket_id=ticket.id,
            success=True,
            amount=MoneyDTO.from_money(amount),
            percentage=outcome.percentage,
            reference=reference,
            message=f"Refund of {amount} processed successfully",
        )

    @staticmethod
    def _authorize_processing(ticket: Ticket, event: Event, user_id: int) -> None:
        if event.creator_id == user_id:
            return
        if not ticket.is_owned_by(user_id):
            raise TicketOwnershipException(ticket.id)
        if not event.is_cancelled():
            raise RefundApprovalRequiredException(ticket.id, event.id)

    async def get_refund_status(self, ticket_id: str, user_id: int) -> RefundStatusDTO:
        """持票人查看退款状态；已退款时附带退款流水"""
        now = self._clock()
        async with self._uow_factory(readonly=True) as uow:
            ticket = await uow.ticket_repository.get_by_id(ticket_id)
            if ticket is None:
                raise TicketNotFoundException(ticket_id)
            if not ticket.is_owned_by(user_id):
                raise TicketOwnershipException(ticket_id)
            event = await uow.event_repository.get_by_id(ticket.event_id)
            if event is None:
                raise EventNotFoundException(ticket.event_id)
            refund_tx = None
            if ticket.payment_status == TicketPaymentStatus.REFUNDED:
                refund_tx = await uow.wallet_repository.get_transaction_by_reference(
                    refund_reference(ticket.payment_reference)
                )

        refunded = refund_tx.amount if refund_tx else ticket.refunded_amount
        return RefundStatusDTO(
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            event_title=event.title,
            event_date=event.date,
            purchase_date=ticket.purchase_date,
            price=MoneyDTO.from_money(ticket.price),
            payment_status=ticket.payment_status.value,
            ticket_status=ticket.status.value,
            refunded_amount=MoneyDTO.from_money(refunded) if refunded else None,
            refund_reference=refund_tx.reference if refund_tx else None,
            refunded_at=ticket.cancelled_at if ticket.payment_status == TicketPaymentStatus.REFUNDED else None,
            eligibility=self._quote(ticket, event, now),
        )

    async def authorize_event_refund(self, event_id: int, organizer_id: int) -> None:
        """活动级退款只允许主办方发起"""
        async with self._uow_factory(readonly=True) as uow:
            event = await uow.event_repository.get_by_id(event_id)
        if event is None:
            raise EventNotFoundException(event_id)
        if event.creator_id != organizer_id:
            raise EventOrganizerRequiredException(event_id)

    async def refund_event(self, event_id: int, reason: str, *, organizer_id: Optional[int] = None) -> EventRefundSummaryDTO:
        """活动级退款：逐张处理已支付票据，单张失败只计数"""
        if organizer_id is not None:
            await self.authorize_event_refund(event_id, organizer_id)
        async with self._uow_factory(readonly=True) as uow:
            event = await uow.event_repository.get_by_id(event_id)
        if event is None:
            raise EventNotFoundException(event_id)

        total = Money.zero(event.currency)
        processed = 0
        failed = 0
        while True:
            # 成功的票据状态会变为 refunded，失败的留在原位，因此按失败数偏移
            async with self._uow_factory(readonly=True) as uow:
                batch = await uow.ticket_repository.list_by_event(
                    event_id,
                    payment_status=TicketPaymentStatus.SUCCESSFUL,
                    skip=failed,
                    limit=self._batch_size,
                )
            if not batch:
                break
            for ticket in batch:
                try:
                    result = await self.process_refund(ticket.id, reason)
                except BusinessException as exc:
                    failed += 1
                    logger.warning("event_refund_ticket_failed", event_id=event_id, ticket_id=ticket.id, error=exc.message)
                    continue
                if result.duplicate:
                    continue
                processed += 1
                total = total + Money(result.amount.amount, result.amount.currency)

        logger.info(
            "event_refunds_completed",
            event_id=event_id,
            total_refunded=total.amount,
            tickets_processed=processed,
            failed_tickets=failed,
        )
        return EventRefundSummaryDTO(
            event_id=event_id,
            total_refunded=MoneyDTO.from_money(total),
            tickets_processed=processed,
            failed_tickets=failed,
        )

    async def refund_policy(self, event_id: int) -> RefundPolicyDTO:
        async with self._uow_factory(readonly=True) as uow:
            event = await uow.event_repository.get_by_id(event_id)
        if event is None:
            raise EventNotFoundException(event_id)
        return RefundPolicyDTO(
            event_id=event_id,
            event_date=event.date,
            deadlines=[
                RefundDeadlineDTO(percentage=d.percentage, until=d.until)
                for d in self._policy.schedule(event.date)
            ],
        )
