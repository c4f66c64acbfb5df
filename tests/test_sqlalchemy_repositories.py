from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

pytest.importorskip("aiosqlite")

from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from application.services.refund_service import RefundApplicationService  # noqa: E402
from domain.common.money import Money  # noqa: E402
from domain.ticket.entity import Ticket, TicketPaymentStatus, TicketStatus  # noqa: E402
from domain.wallet.entity import TransactionType, WalletTransaction  # noqa: E402
from domain.wallet.repository import DuplicateTransactionError  # noqa: E402
from infrastructure.database import build_engine, create_tables  # noqa: E402
from infrastructure.unit_of_work import uow_factory_for  # noqa: E402
from tests.fakes import make_event  # noqa: E402


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def db_uow_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ticketing.db'}")
    await create_tables(engine)
    try:
        yield uow_factory_for(async_sessionmaker(bind=engine, expire_on_commit=False))
    finally:
        await engine.dispose()


async def _seed_event(factory, **kwargs):
    async with factory() as uow:
        return await uow.event_repository.create(make_event(date=NOW + timedelta(days=10), **kwargs))


def _ticket(event_id: int, reference: str = "ref_1", user_id: int = 1) -> Ticket:
    return Ticket.issue(
        event_id=event_id,
        user_id=user_id,
        unit_price=Money(5000),
        quantity=1,
        payment_reference=reference,
        now=NOW,
    )


@pytest.mark.asyncio
async def test_guarded_decrement_never_oversells(db_uow_factory):
    event = await _seed_event(db_uow_factory, total=2)

    async with db_uow_factory() as uow:
        assert await uow.event_repository.decrement_available(event.id, 2) is True
        assert await uow.event_repository.decrement_available(event.id, 1) is False
        assert await uow.event_repository.increment_available(event.id, 3) is False

    async with db_uow_factory(readonly=True) as uow:
        stored = await uow.event_repository.get_by_id(event.id)
    assert stored.available_tickets == 0


@pytest.mark.asyncio
async def test_add_if_absent_is_keyed_on_payment_reference(db_uow_factory):
    event = await _seed_event(db_uow_factory)

    async with db_uow_factory() as uow:
        first, created = await uow.ticket_repository.add_if_absent(_ticket(event.id))
    async with db_uow_factory() as uow:
        again, created_again = await uow.ticket_repository.add_if_absent(_ticket(event.id))
        # 冲突只回滚 SAVEPOINT，外层事务仍可继续
        assert await uow.event_repository.decrement_available(event.id, 1) is True

    assert created is True
    assert created_again is False
    assert again.id == first.id
    async with db_uow_factory(readonly=True) as uow:
        assert len(await uow.ticket_repository.list_by_event(event.id)) == 1
        assert (await uow.event_repository.get_by_id(event.id)).available_tickets == 9


@pytest.mark.asyncio
async def test_update_if_state_compares_and_sets(db_uow_factory):
    event = await _seed_event(db_uow_factory)
    async with db_uow_factory() as uow:
        ticket, _ = await uow.ticket_repository.add_if_absent(_ticket(event.id))

    ticket.mark_used(event.date, now=NOW)
    async with db_uow_factory() as uow:
        applied = await uow.ticket_repository.update_if_state(
            ticket, expected_status=TicketStatus.CONFIRMED, expected_payment_status=TicketPaymentStatus.SUCCESSFUL
        )
        stale = await uow.ticket_repository.update_if_state(
            ticket, expected_status=TicketStatus.CONFIRMED, expected_payment_status=TicketPaymentStatus.SUCCESSFUL
        )
    assert applied is True
    assert stale is False

    async with db_uow_factory(readonly=True) as uow:
        stored = await uow.ticket_repository.get_by_number(ticket.ticket_number)
    assert stored.status == TicketStatus.USED
    assert stored.used_at is not None


@pytest.mark.asyncio
async def test_wallet_credit_rejects_duplicate_reference(db_uow_factory):
    def _tx():
        return WalletTransaction(
            id=None,
            user_id=1,
            type=TransactionType.REFUND,
            amount=Money(2500),
            reference="REF-ref_1",
            description="Refund",
            created_at=NOW,
        )

    async with db_uow_factory() as uow:
        credited = await uow.wallet_repository.credit(_tx())
    assert credited.balance_after == Money(2500)

    with pytest.raises(DuplicateTransactionError):
        async with db_uow_factory() as uow:
            await uow.wallet_repository.credit(_tx())

    async with db_uow_factory(readonly=True) as uow:
        wallet = await uow.wallet_repository.get_by_user(1)
        history = await uow.wallet_repository.list_transactions(1)
    assert wallet.balance == Money(2500)
    assert len(history) == 1


@pytest.mark.asyncio
async def test_refund_against_database(db_uow_factory):
    event = await _seed_event(db_uow_factory, creator_id=50)
    async with db_uow_factory() as uow:
        ticket, _ = await uow.ticket_repository.add_if_absent(_ticket(event.id))
        await uow.event_repository.decrement_available(event.id, 1)

    service = RefundApplicationService(db_uow_factory, clock=lambda: NOW)
    result = await service.process_refund(ticket.id, "Change of plans", user_id=50)
    duplicate = await service.process_refund(ticket.id, "Change of plans", user_id=50)

    assert result.amount.amount == 5000
    assert duplicate.duplicate is True
    async with db_uow_factory(readonly=True) as uow:
        assert (await uow.event_repository.get_by_id(event.id)).available_tickets == 10
        assert (await uow.wallet_repository.get_by_user(1)).balance == Money(5000)
