"""
Purchase coordinator: initiation and reconciliation of ticket purchases.

Reconciliation runs for both gateway webhooks and client polling, in any
order and possibly concurrently. The unique payment reference on tickets is
the idempotency guard: at most one ticket and one inventory decrement per
reference, however often this runs.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from application.dto import PurchaseResultDTO, MoneyDTO, ReconcileResultDTO, TicketDTO
from application.dtos.payments import OpenSession
from application.ports.notifications import NotificationDispatcher
from application.ports.payment_gateway import PaymentGateway
from application.services.notify import dispatch_safely
from application.services.payment_intent_cache import PaymentIntentCache
from application.services.ticket_cache import TicketListCache, user_tickets_key, event_tickets_key, event_key
from application.services.ticket_codes import TicketCodec
from core.logging_config import get_logger
from domain.common.exceptions import (
    EventNotFoundException,
    EventNotOnSaleException,
    IntentExpiredOrUnknownException,
    InventoryExhaustedException,
    PaymentNotSuccessfulException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.event.inventory import InventoryLedger
from domain.payment.entity import GatewayStatus, PaymentIntent
from domain.ticket.entity import Ticket


logger = get_logger(__name__)


class PurchaseCoordinator:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        intents: PaymentIntentCache,
        codec: TicketCodec,
        notifier: Optional[NotificationDispatcher] = None,
        list_cache: Optional[TicketListCache] = None,
        *,
        callback_url: Optional[str] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._intents = intents
        self._codec = codec
        self._notifier = notifier
        self._list_cache = list_cache or TicketListCache(None)
        self._callback_url = callback_url
        self._clock = clock

    async def initiate_purchase(
        self,
        event_id: int,
        user_id: int,
        quantity: int,
        buyer_email: str,
    ) -> PurchaseResultDTO:
        """校验活动与余票，打开网关会话并写入支付意向；不扣减库存"""
        async with self._uow_factory(readonly=True) as uow:
            event = await uow.event_repository.get_by_id(event_id)
            if event is None:
                raise EventNotFoundException(event_id)
            if not event.is_on_sale():
                raise EventNotOnSaleException(event_id, event.status.value)
            InventoryLedger.ensure_available(event, quantity)

        amount = event.price_for(quantity)
        session = await self._gateway.open_session(
            OpenSession(
                buyer_email=buyer_email,
                amount=amount,
                metadata={"eventId": event_id, "userId": user_id, "quantity": quantity},
                callback_url=self._callback_url,
            )
        )
        intent = PaymentIntent.open(
            reference=session.reference,
            event_id=event_id,
            user_id=user_id,
            quantity=quantity,
            total_amount=amount,
            buyer_email=buyer_email,
            ttl_seconds=self._intents.default_ttl,
            now=self._clock(),
        )
        await self._intents.put(intent)
        logger.info(
            "purchase_initiated",
            reference=session.reference,
            event_id=event_id,
            user_id=user_id,
            quantity=quantity,
            amount=amount.amount,
            currency=amount.currency,
        )
        return PurchaseResultDTO(
            payment_url=session.redirect_url,
            reference=session.reference,
            amount=MoneyDTO.from_money(amount),
            expires_in=self._intents.default_ttl,
        )

    async def _existing_ticket(self, reference: str) -> Optional[Ticket]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.ticket_repository.get_by_payment_reference(reference)

    async def reconcile_payment(self, reference: str) -> ReconcileResultDTO:
        intent = await self._intents.get(reference)
        if intent is None:
            # 意向已被先前的核实清除，或已过期
            existing = await self._existing_ticket(reference)
            if existing is not None:
                logger.info("payment_reconcile_duplicate", reference=reference, ticket_id=existing.id)
                return self._duplicate(existing)
            raise IntentExpiredOrUnknownException(reference)

        tx = await self._gateway.get_status(reference)
        if tx.status != GatewayStatus.SUCCESS:
            if tx.status == GatewayStatus.FAILED:
                try:
                    await self._intents.mark_failed(intent, now=self._clock())
                except Exception as exc:
                    logger.warning("payment_intent_mark_failed_error", reference=reference, error=str(exc))
            logger.info("payment_not_successful", reference=reference, status=tx.status.value)
            raise PaymentNotSuccessfulException(reference, tx.status.value)
        if tx.amount != intent.total_amount:
            logger.error(
                "payment_amount_mismatch",
                reference=reference,
                expected=intent.total_amount.amount,
                expected_currency=intent.total_amount.currency,
                reported=tx.amount.amount,
                reported_currency=tx.amount.currency,
            )
            raise PaymentNotSuccessfulException(reference, tx.status.value, reason="amount_mismatch")

        now = self._clock()
        try:
            async with self._uow_factory() as uow:
                event = await uow.event_repository.get_by_id(intent.event_id)
                if event is None:
                    raise EventNotFoundException(intent.event_id)
                candidate = Ticket.issue(
                    event_id=intent.event_id,
                    user_id=intent.user_id,
                    unit_price=intent.unit_price,
                    quantity=intent.quantity,
                    payment_reference=reference,
                    buyer_email=intent.buyer_email,
                    now=now,
                )
                candidate.qr_payload = self._codec.encode(candidate, now=now)
                ticket, created = await uow.ticket_repository.add_if_absent(candidate)
                if created:
                    await InventoryLedger(uow.event_repository).reserve(
                        intent.event_id, intent.quantity, reference=reference
                    )
        except InventoryExhaustedException:
            logger.error(
                "inventory_exhausted_after_payment",
                reference=reference,
                event_id=intent.event_id,
                quantity=intent.quantity,
                amount=intent.total_amount.amount,
                action="manual_reconciliation_required",
            )
            raise

        if not created:
            logger.info("payment_reconcile_duplicate", reference=reference, ticket_id=ticket.id)
            await self._discard_intent(reference)
            return self._duplicate(ticket)

        logger.info(
            "ticket_created",
            reference=reference,
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            event_id=ticket.event_id,
            quantity=ticket.quantity,
        )
        await self._discard_intent(reference)
        await self._list_cache.invalidate(
            user_tickets_key(ticket.user_id), event_tickets_key(ticket.event_id), event_key(ticket.event_id)
        )
        if ticket.buyer_email:
            dispatch_safely(
                self._notifier,
                "send_ticket_confirmation",
                ticket.buyer_email,
                {
                    "ticketNumber": ticket.ticket_number,
                    "eventTitle": event.title,
                    "eventDate": event.date.isoformat(),
                    "quantity": ticket.quantity,
                    "amount": ticket.total_paid.amount,
                    "currency": ticket.total_paid.currency,
                    "qrPayload": ticket.qr_payload,
                },
            )
        return ReconcileResultDTO(
            success=True,
            message="Payment verified and ticket created successfully",
            ticket=TicketDTO.from_entity(ticket),
        )

    async def _discard_intent(self, reference: str) -> None:
        # 票据已落库；删除失败只会让下次核实走幂等分支
        try:
            await self._intents.delete(reference)
        except Exception as exc:
            logger.warning("payment_intent_delete_failed", reference=reference, error=str(exc))

    @staticmethod
    def _duplicate(ticket: Ticket) -> ReconcileResultDTO:
        return ReconcileResultDTO(
            success=True,
            message="Payment already verified",
            ticket=TicketDTO.from_entity(ticket),
            duplicate=True,
        )
