"""In-memory collaborators for application-level tests."""
from __future__ import annotations

import asyncio
import copy
import itertools
from datetime import datetime, timedelta
from typing import Any, Optional

from application.dtos.payments import GatewaySession, GatewayTransaction, OpenSession, WebhookEvent
from application.services.ticket_codes import TicketCodec
from domain.common.money import Money
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.event.entity import Event, EventStatus
from domain.event.repository import EventRepository
from domain.payment.entity import GatewayStatus
from domain.ticket.entity import Ticket, TicketPaymentStatus, TicketStatus
from domain.ticket.repository import TicketRepository
from domain.wallet.entity import Wallet, WalletTransaction
from domain.wallet.repository import DuplicateTransactionError, WalletRepository


def make_event(
    *,
    date: datetime,
    price: int = 5000,
    total: int = 10,
    available: Optional[int] = None,
    status: EventStatus = EventStatus.PUBLISHED,
    creator_id: Optional[int] = None,
) -> Event:
    return Event(
        id=None,
        title="Lagos Jazz Night",
        ticket_price=Money(price, "NGN"),
        total_tickets=total,
        available_tickets=total if available is None else available,
        date=date,
        status=status,
        creator_id=creator_id,
    )


def make_codec() -> TicketCodec:
    return TicketCodec("test-secret-key", "http://testserver")


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryStore:
    """共享数据；写事务串行执行，回滚时恢复快照"""

    def __init__(self) -> None:
        self.events: dict[int, Event] = {}
        self.tickets: dict[str, Ticket] = {}
        self.wallets: dict[int, Wallet] = {}
        self.transactions: list[WalletTransaction] = []
        self.write_lock = asyncio.Lock()
        self._event_ids = itertools.count(1)
        self._wallet_ids = itertools.count(1)
        self._tx_ids = itertools.count(1)

    def add_event(self, event: Event) -> Event:
        event = copy.deepcopy(event)
        if event.id is None:
            event.id = next(self._event_ids)
        self.events[event.id] = event
        return copy.deepcopy(event)

    def add_ticket(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.id] = copy.deepcopy(ticket)
        return ticket

    def available(self, event_id: int) -> int:
        return self.events[event_id].available_tickets

    def snapshot(self) -> tuple:
        return copy.deepcopy((self.events, self.tickets, self.wallets, self.transactions))

    def restore(self, snap: tuple) -> None:
        self.events, self.tickets, self.wallets, self.transactions = snap

    def uow_factory(self, *, readonly: bool = False) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self, readonly=readonly)


class InMemoryEventRepository(EventRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def get_by_id(self, event_id: int) -> Optional[Event]:
        event = self._store.events.get(event_id)
        return copy.deepcopy(event) if event else None

    async def create(self, event: Event) -> Event:
        return self._store.add_event(event)

    async def decrement_available(self, event_id: int, quantity: int) -> bool:
        event = self._store.events.get(event_id)
        if event is None or event.available_tickets < quantity:
            return False
        event.available_tickets -= quantity
        return True

    async def increment_available(self, event_id: int, quantity: int) -> bool:
        event = self._store.events.get(event_id)
        if event is None or event.available_tickets + quantity > event.total_tickets:
            return False
        event.available_tickets += quantity
        return True


class InMemoryTicketRepository(TicketRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def add_if_absent(self, ticket: Ticket):
        for existing in self._store.tickets.values():
            if existing.payment_reference == ticket.payment_reference:
                return copy.deepcopy(existing), False
        self._store.tickets[ticket.id] = copy.deepcopy(ticket)
        return copy.deepcopy(ticket), True

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        ticket = self._store.tickets.get(ticket_id)
        return copy.deepcopy(ticket) if ticket else None

    async def get_by_number(self, ticket_number: str) -> Optional[Ticket]:
        for ticket in self._store.tickets.values():
            if ticket.ticket_number == ticket_number:
                return copy.deepcopy(ticket)
        return None

    async def get_by_payment_reference(self, reference: str) -> Optional[Ticket]:
        for ticket in self._store.tickets.values():
            if ticket.payment_reference == reference:
                return copy.deepcopy(ticket)
        return None

    async def list_by_user(self, user_id: int, skip: int = 0, limit: int = 100):
        items = [t for t in self._store.tickets.values() if t.user_id == user_id]
        return copy.deepcopy(items[skip:skip + limit])

    async def list_by_event(self, event_id: int, *, payment_status=None, skip: int = 0, limit: int = 100):
        items = [
            t for t in self._store.tickets.values()
            if t.event_id == event_id and (payment_status is None or t.payment_status == payment_status)
        ]
        return copy.deepcopy(items[skip:skip + limit])

    async def update_if_state(
        self,
        ticket: Ticket,
        *,
        expected_status: TicketStatus,
        expected_payment_status: TicketPaymentStatus,
    ) -> bool:
        stored = self._store.tickets.get(ticket.id)
        if stored is None or stored.status != expected_status or stored.payment_status != expected_payment_status:
            return False
        self._store.tickets[ticket.id] = copy.deepcopy(ticket)
        return True


class InMemoryWalletRepository(WalletRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def get_by_user(self, user_id: int) -> Optional[Wallet]:
        wallet = self._store.wallets.get(user_id)
        return copy.deepcopy(wallet) if wallet else None

    async def get_or_create(self, user_id: int, currency: str) -> Wallet:
        wallet = self._store.wallets.get(user_id)
        if wallet is None:
            wallet = Wallet(id=next(self._store._wallet_ids), user_id=user_id, balance=Money.zero(currency))
            self._store.wallets[user_id] = wallet
        return copy.deepcopy(wallet)

    async def credit(self, transaction: WalletTransaction) -> WalletTransaction:
        if any(tx.reference == transaction.reference for tx in self._store.transactions):
            raise DuplicateTransactionError(transaction.reference)
        await self.get_or_create(transaction.user_id, transaction.amount.currency)
        wallet = self._store.wallets[transaction.user_id]
        wallet.balance = wallet.balance + transaction.amount
        wallet.last_transaction_at = transaction.created_at
        stored = copy.deepcopy(transaction)
        stored.id = next(self._store._tx_ids)
        stored.balance_after = wallet.balance
        self._store.transactions.append(stored)
        return copy.deepcopy(stored)

    async def get_transaction_by_reference(self, reference: str) -> Optional[WalletTransaction]:
        for tx in self._store.transactions:
            if tx.reference == reference:
                return copy.deepcopy(tx)
        return None

    async def list_transactions(self, user_id: int, skip: int = 0, limit: int = 50):
        items = [tx for tx in reversed(self._store.transactions) if tx.user_id == user_id]
        return copy.deepcopy(items[skip:skip + limit])


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self._store = store
        self._snapshot = None

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        if not self._readonly:
            await self._store.write_lock.acquire()
            self._snapshot = self._store.snapshot()
        self.event_repository = InMemoryEventRepository(self._store)
        self.ticket_repository = InMemoryTicketRepository(self._store)
        self.wallet_repository = InMemoryWalletRepository(self._store)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if not self._readonly:
                self._store.write_lock.release()

    async def commit(self) -> None:
        self._committed = True
        self._snapshot = None

    async def rollback(self) -> None:
        if self._snapshot is not None:
            self._store.restore(self._snapshot)
            self._snapshot = None


class StubGateway:
    """可编程网关：记录会话，按 reference 返回预设交易状态"""

    provider = "stub"

    def __init__(self) -> None:
        self.sessions: list[OpenSession] = []
        self.transactions: dict[str, GatewayTransaction] = {}
        self.status_calls = 0
        self.fail_status_with: Optional[Exception] = None
        self._refs = itertools.count(1)

    async def open_session(self, req: OpenSession) -> GatewaySession:
        self.sessions.append(req)
        reference = f"ref_{next(self._refs)}"
        return GatewaySession(
            reference=reference,
            redirect_url=f"https://checkout.test/{reference}",
            access_code=f"ac_{reference}",
            provider=self.provider,
        )

    def settle(self, reference: str, amount: Money, status: GatewayStatus = GatewayStatus.SUCCESS) -> None:
        self.transactions[reference] = GatewayTransaction(
            reference=reference,
            status=status,
            amount=amount,
            provider=self.provider,
            provider_status=status.value,
        )

    async def get_status(self, reference: str) -> GatewayTransaction:
        self.status_calls += 1
        await asyncio.sleep(0)
        if self.fail_status_with is not None:
            raise self.fail_status_with
        tx = self.transactions.get(reference)
        if tx is None:
            return GatewayTransaction(
                reference=reference,
                status=GatewayStatus.PENDING,
                amount=Money.zero(),
                provider=self.provider,
                provider_status="ongoing",
            )
        return tx

    def parse_webhook(self, headers: dict, body: bytes) -> WebhookEvent:
        return WebhookEvent(id="evt_1", type="charge.success", provider=self.provider, data={})


class DictCache:
    """KeyValueCache 的字典实现；ttl 仅记录不过期"""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}
        self.down = False

    def _check(self) -> None:
        if self.down:
            raise ConnectionError("cache unavailable")

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._check()
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.data[key] = copy.deepcopy(value)
        self.ttls[key] = ttl_seconds

    async def get(self, key: str) -> Optional[Any]:
        self._check()
        return copy.deepcopy(self.data.get(key))

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def set_if_absent(self, key: str, value: Any, ttl_seconds: int) -> bool:
        self._check()
        if key in self.data:
            return False
        self.data[key] = copy.deepcopy(value)
        self.ttls[key] = ttl_seconds
        return True

    def expire(self, key: str) -> None:
        self.data.pop(key, None)
        self.ttls.pop(key, None)


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str, dict]] = []

    def send_ticket_confirmation(self, email: str, details: dict) -> None:
        if self.fail:
            raise RuntimeError("broker down")
        self.sent.append(("ticket", email, details))

    def send_refund_confirmation(self, email: str, details: dict) -> None:
        if self.fail:
            raise RuntimeError("broker down")
        self.sent.append(("refund", email, details))


def seed_ticket(
    store: InMemoryStore,
    event: Event,
    *,
    user_id: int = 1,
    quantity: int = 1,
    now: Optional[datetime] = None,
    reference: Optional[str] = None,
) -> Ticket:
    """直接落库一张已确认票据并扣减库存，等同于一次成功的支付核实"""
    ticket = Ticket.issue(
        event_id=event.id,
        user_id=user_id,
        unit_price=event.ticket_price,
        quantity=quantity,
        payment_reference=reference or f"seed_{len(store.tickets) + 1}",
        buyer_email=f"user{user_id}@example.com",
        now=now,
    )
    ticket.qr_payload = make_codec().encode(ticket, now=now)
    store.events[event.id].available_tickets -= quantity
    return store.add_ticket(ticket)
