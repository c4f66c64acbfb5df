import asyncio
from datetime import timedelta

import pytest

from application.services.refund_service import RefundApplicationService
from application.services.ticket_cache import TicketListCache, wallet_keys
from application.services.ticket_service import TicketApplicationService
from application.services.wallet_service import WalletApplicationService
from domain.common.exceptions import (
    EventOrganizerRequiredException,
    RefundApprovalRequiredException,
    RefundNotEligibleException,
    TicketOwnershipException,
)
from domain.event.entity import EventStatus
from domain.ticket.entity import TicketPaymentStatus, TicketStatus
from tests.fakes import RecordingNotifier, make_codec, make_event, seed_ticket


ORGANIZER_ID = 99


@pytest.fixture
def refunds(uow_factory, notifier, cache, clock):
    return RefundApplicationService(uow_factory, notifier, TicketListCache(cache), clock=clock)


def _event_in(store, clock, **delta):
    return store.add_event(make_event(date=clock.now + timedelta(**delta), price=10000, creator_id=ORGANIZER_ID))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "delta, percentage, amount",
    [
        ({"days": 10}, 100, 10000),
        ({"days": 5}, 50, 5000),
        ({"days": 2}, 25, 2500),
    ],
)
async def test_refund_tiers_credit_wallet(refunds, store, clock, delta, percentage, amount):
    event = _event_in(store, clock, **delta)
    ticket = seed_ticket(store, event, now=clock.now)

    result = await refunds.process_refund(ticket.id, "Change of plans", user_id=ORGANIZER_ID)

    assert result.success is True
    assert result.percentage == percentage
    assert result.amount.amount == amount
    assert store.wallets[ticket.user_id].balance.amount == amount
    stored = store.tickets[ticket.id]
    assert stored.status == TicketStatus.CANCELLED
    assert stored.payment_status == TicketPaymentStatus.REFUNDED
    assert store.available(event.id) == event.total_tickets


@pytest.mark.asyncio
async def test_refund_within_a_day_is_rejected(refunds, store, clock):
    event = _event_in(store, clock, hours=12)
    ticket = seed_ticket(store, event, now=clock.now)

    with pytest.raises(RefundNotEligibleException):
        await refunds.process_refund(ticket.id, "Too late", user_id=ORGANIZER_ID)
    assert store.tickets[ticket.id].payment_status == TicketPaymentStatus.SUCCESSFUL
    assert store.wallets == {}


@pytest.mark.asyncio
async def test_quote_matches_processed_amount(refunds, store, clock):
    event = _event_in(store, clock, days=5)
    ticket = seed_ticket(store, event, quantity=2, now=clock.now)

    quote = await refunds.quote_refund(ticket.id, ticket.user_id)
    assert quote.eligible is True
    assert quote.percentage == 50
    assert quote.amount.amount == 10000
    assert quote.requires_approval is True
    assert quote.deadline == event.date - timedelta(days=3)

    result = await refunds.process_refund(ticket.id, "Plans changed", user_id=ORGANIZER_ID)
    assert result.amount.amount == quote.amount.amount
    assert store.available(event.id) == 10


@pytest.mark.asyncio
async def test_quote_requires_owner(refunds, store, clock):
    event = _event_in(store, clock, days=10)
    ticket = seed_ticket(store, event, user_id=1, now=clock.now)

    with pytest.raises(TicketOwnershipException):
        await refunds.quote_refund(ticket.id, 2)


@pytest.mark.asyncio
async def test_used_ticket_cannot_be_refunded(refunds, store, clock, uow_factory):
    event = _event_in(store, clock, days=10)
    ticket = seed_ticket(store, event, now=clock.now)
    await TicketApplicationService(uow_factory, make_codec(), clock=clock).verify_ticket(ticket.ticket_number)

    with pytest.raises(RefundNotEligibleException):
        await refunds.process_refund(ticket.id, "Left early", user_id=ORGANIZER_ID)


@pytest.mark.asyncio
async def test_concurrent_refunds_credit_once(refunds, store, clock):
    event = _event_in(store, clock, days=10)
    ticket = seed_ticket(store, event, now=clock.now)

    results = await asyncio.gather(
        *(refunds.process_refund(ticket.id, "Duplicate click", user_id=ORGANIZER_ID) for _ in range(4))
    )

    assert sum(1 for r in results if not r.duplicate) == 1
    assert all(r.amount.amount == 10000 for r in results)
    assert len(store.transactions) == 1
    assert store.wallets[ticket.user_id].balance.amount == 10000
    assert store.available(event.id) == 10


@pytest.mark.asyncio
async def test_repeat_refund_reports_duplicate(refunds, store, clock):
    event = _event_in(store, clock, days=5)
    ticket = seed_ticket(store, event, now=clock.now)
    first = await refunds.process_refund(ticket.id, "First", user_id=ORGANIZER_ID)

    again = await refunds.process_refund(ticket.id, "Second", user_id=ORGANIZER_ID)

    assert again.duplicate is True
    assert again.reference == first.reference
    assert again.percentage == 50
    assert len(store.transactions) == 1


@pytest.mark.asyncio
async def test_refund_notifies_and_invalidates_wallet_cache(refunds, store, clock, cache, notifier):
    event = _event_in(store, clock, days=10)
    ticket = seed_ticket(store, event, now=clock.now)
    for key in wallet_keys(ticket.user_id):
        cache.data[key] = {"stale": True}

    await refunds.process_refund(ticket.id, "Sick", user_id=ORGANIZER_ID)

    assert all(key not in cache.data for key in wallet_keys(ticket.user_id))
    assert notifier.sent[0][0] == "refund"
    assert notifier.sent[0][2]["amount"] == 10000


@pytest.mark.asyncio
async def test_refund_succeeds_when_notifier_fails(uow_factory, store, clock):
    service = RefundApplicationService(uow_factory, RecordingNotifier(fail=True), clock=clock)
    event = _event_in(store, clock, days=10)
    ticket = seed_ticket(store, event, now=clock.now)

    result = await service.process_refund(ticket.id, "Sick", user_id=ORGANIZER_ID)
    assert result.success is True


@pytest.mark.asyncio
async def test_event_refund_summarises_batch(refunds, store, clock, uow_factory):
    event = _event_in(store, clock, days=2)
    tickets = [seed_ticket(store, event, user_id=uid, now=clock.now) for uid in (1, 2, 3)]
    await TicketApplicationService(uow_factory, make_codec(), clock=clock).verify_ticket(tickets[2].ticket_number)
    store.events[event.id].status = EventStatus.CANCELLED

    summary = await refunds.refund_event(event.id, "Venue unavailable", organizer_id=ORGANIZER_ID)

    # 活动取消：全额退款；已入场的票计入失败
    assert summary.tickets_processed == 2
    assert summary.failed_tickets == 1
    assert summary.total_refunded.amount == 20000
    assert store.wallets[1].balance.amount == 10000
    assert store.wallets[2].balance.amount == 10000


@pytest.mark.asyncio
async def test_event_refund_requires_organizer(refunds, store, clock):
    event = _event_in(store, clock, days=10)
    seed_ticket(store, event, now=clock.now)

    with pytest.raises(EventOrganizerRequiredException):
        await refunds.refund_event(event.id, "Not mine", organizer_id=1)
    assert store.transactions == []


@pytest.mark.asyncio
async def test_refund_policy_schedule(refunds, store, clock):
    event = _event_in(store, clock, days=30)

    policy = await refunds.refund_policy(event.id)

    assert [d.percentage for d in policy.deadlines] == [100, 50, 25]
    assert policy.deadlines[0].until == event.date - timedelta(days=7)


@pytest.mark.asyncio
async def test_wallet_service_reads_balance_and_history(refunds, store, clock, uow_factory):
    event = _event_in(store, clock, days=10)
    ticket = seed_ticket(store, event, now=clock.now)
    await refunds.process_refund(ticket.id, "Sick", user_id=ORGANIZER_ID)
    wallets = WalletApplicationService(uow_factory)

    wallet = await wallets.get_wallet(ticket.user_id)
    history = await wallets.list_transactions(ticket.user_id)
    empty = await wallets.get_wallet(404)

    assert wallet.balance.amount == 10000
    assert history[0].reference == f"REF-{ticket.payment_reference}"
    assert history[0].balance_after.amount == 10000
    assert empty.balance.amount == 0


@pytest.mark.asyncio
async def test_holder_cannot_process_refund_without_approval(refunds, store, clock):
    event = _event_in(store, clock, days=10)
    ticket = seed_ticket(store, event, now=clock.now)

    quote = await refunds.quote_refund(ticket.id, ticket.user_id)
    with pytest.raises(RefundApprovalRequiredException):
        await refunds.process_refund(ticket.id, "Change of plans", user_id=ticket.user_id)

    assert quote.requires_approval is True
    assert store.tickets[ticket.id].payment_status == TicketPaymentStatus.SUCCESSFUL
    assert store.transactions == []
    assert store.available(event.id) == event.total_tickets - 1


@pytest.mark.asyncio
async def test_holder_refunds_directly_once_organizer_cancels(refunds, store, clock):
    event = _event_in(store, clock, days=2)
    ticket = seed_ticket(store, event, now=clock.now)
    store.events[event.id].status = EventStatus.CANCELLED

    quote = await refunds.quote_refund(ticket.id, ticket.user_id)
    result = await refunds.process_refund(ticket.id, "Event cancelled", user_id=ticket.user_id)

    assert quote.requires_approval is False
    assert result.percentage == 100
    assert store.wallets[ticket.user_id].balance.amount == 10000


@pytest.mark.asyncio
async def test_stranger_cannot_process_refund(refunds, store, clock):
    event = _event_in(store, clock, days=10)
    ticket = seed_ticket(store, event, user_id=1, now=clock.now)
    store.events[event.id].status = EventStatus.CANCELLED

    with pytest.raises(TicketOwnershipException):
        await refunds.process_refund(ticket.id, "Not mine", user_id=2)
    assert store.transactions == []


@pytest.mark.asyncio
async def test_refund_status_before_and_after_refund(refunds, store, clock):
    event = _event_in(store, clock, days=5)
    ticket = seed_ticket(store, event, now=clock.now)

    before = await refunds.get_refund_status(ticket.id, ticket.user_id)
    await refunds.process_refund(ticket.id, "Approved", user_id=ORGANIZER_ID)
    after = await refunds.get_refund_status(ticket.id, ticket.user_id)

    assert before.payment_status == "successful"
    assert before.refunded_amount is None
    assert before.eligibility.eligible is True
    assert before.eligibility.percentage == 50
    assert after.payment_status == "refunded"
    assert after.ticket_status == "cancelled"
    assert after.refunded_amount.amount == 5000
    assert after.refund_reference == f"REF-{ticket.payment_reference}"
    assert after.refunded_at == clock.now
    assert after.eligibility.eligible is False

    with pytest.raises(TicketOwnershipException):
        await refunds.get_refund_status(ticket.id, ticket.user_id + 1)
