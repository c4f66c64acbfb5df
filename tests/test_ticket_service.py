import asyncio
from datetime import timedelta

import pytest

from application.services.ticket_cache import TicketListCache, user_tickets_key
from application.services.ticket_service import TicketApplicationService
from domain.common.exceptions import (
    EventOrganizerRequiredException,
    InvalidTicketTransitionException,
    TicketAlreadyUsedException,
    TicketNotFoundException,
    TicketOwnershipException,
)
from domain.ticket.entity import TicketStatus
from tests.fakes import make_codec, make_event, seed_ticket


@pytest.fixture
def service(uow_factory, cache, clock):
    return TicketApplicationService(uow_factory, make_codec(), TicketListCache(cache), clock=clock)


@pytest.mark.asyncio
async def test_verify_by_number_marks_used(service, store, future_event, clock):
    ticket = seed_ticket(store, future_event, now=clock.now)

    result = await service.verify_ticket(ticket.ticket_number)

    assert result.is_valid is True
    assert result.ticket.status == TicketStatus.USED.value
    assert store.tickets[ticket.id].used_at == clock.now


@pytest.mark.asyncio
async def test_verify_by_signed_qr_payload(service, store, future_event, clock):
    ticket = seed_ticket(store, future_event, now=clock.now)

    result = await service.verify_ticket(ticket.qr_payload)
    assert result.is_valid is True


@pytest.mark.asyncio
async def test_verify_rejects_tampered_qr_payload(service, store, future_event, clock):
    ticket = seed_ticket(store, future_event, now=clock.now)
    forged = ticket.qr_payload.replace(ticket.ticket_number, "TKT-FORGED-000000")

    with pytest.raises(TicketNotFoundException):
        await service.verify_ticket(forged)
    assert store.tickets[ticket.id].status == TicketStatus.CONFIRMED


@pytest.mark.asyncio
async def test_verify_twice_reports_already_used(service, store, future_event, clock):
    ticket = seed_ticket(store, future_event, now=clock.now)
    await service.verify_ticket(ticket.ticket_number)

    with pytest.raises(TicketAlreadyUsedException):
        await service.verify_ticket(ticket.ticket_number)


@pytest.mark.asyncio
async def test_concurrent_scans_admit_once(service, store, future_event, clock):
    ticket = seed_ticket(store, future_event, now=clock.now)

    results = await asyncio.gather(
        *(service.verify_ticket(ticket.ticket_number) for _ in range(5)),
        return_exceptions=True,
    )
    assert sum(1 for r in results if not isinstance(r, Exception) and r.is_valid) == 1
    assert all(isinstance(r, TicketAlreadyUsedException) for r in results if isinstance(r, Exception))


@pytest.mark.asyncio
async def test_verify_after_event_expires_ticket(service, store, clock):
    event = store.add_event(make_event(date=clock.now + timedelta(hours=2)))
    ticket = seed_ticket(store, event, now=clock.now)
    clock.advance(hours=3)

    result = await service.verify_ticket(ticket.ticket_number)

    assert result.is_valid is False
    assert store.tickets[ticket.id].status == TicketStatus.EXPIRED


@pytest.mark.asyncio
async def test_verify_cancelled_ticket_is_invalid(service, store, future_event, clock):
    ticket = seed_ticket(store, future_event, now=clock.now)
    await service.cancel_ticket(ticket.id, ticket.user_id)

    result = await service.verify_ticket(ticket.ticket_number)
    assert result.is_valid is False


@pytest.mark.asyncio
async def test_cancel_used_ticket_is_rejected(service, store, future_event, clock):
    ticket = seed_ticket(store, future_event, now=clock.now)
    await service.verify_ticket(ticket.ticket_number)
    before = store.available(future_event.id)

    with pytest.raises(InvalidTicketTransitionException):
        await service.cancel_ticket(ticket.id, ticket.user_id)
    assert store.available(future_event.id) == before


@pytest.mark.asyncio
async def test_cancel_confirmed_ticket_restores_quantity(service, store, future_event, clock, cache):
    ticket = seed_ticket(store, future_event, quantity=3, now=clock.now)
    assert store.available(future_event.id) == 7
    cache.data[user_tickets_key(ticket.user_id)] = ["stale"]

    result = await service.cancel_ticket(ticket.id, ticket.user_id)

    assert result.released_quantity == 3
    assert result.ticket.status == TicketStatus.CANCELLED.value
    assert store.available(future_event.id) == 10
    assert user_tickets_key(ticket.user_id) not in cache.data


@pytest.mark.asyncio
async def test_cancel_past_event_is_rejected(service, store, clock):
    event = store.add_event(make_event(date=clock.now + timedelta(hours=1)))
    ticket = seed_ticket(store, event, now=clock.now)
    clock.advance(hours=2)

    with pytest.raises(InvalidTicketTransitionException):
        await service.cancel_ticket(ticket.id, ticket.user_id)


@pytest.mark.asyncio
async def test_cancel_requires_owner(service, store, future_event, clock):
    ticket = seed_ticket(store, future_event, user_id=1, now=clock.now)

    with pytest.raises(TicketOwnershipException):
        await service.cancel_ticket(ticket.id, 2)
    assert store.tickets[ticket.id].status == TicketStatus.CONFIRMED


@pytest.mark.asyncio
async def test_list_user_tickets_is_cached(service, store, future_event, clock, cache):
    seed_ticket(store, future_event, user_id=5, now=clock.now)

    first = await service.list_user_tickets(5)
    assert len(first) == 1
    assert user_tickets_key(5) in cache.data

    # 缓存命中时不再读库
    store.tickets.clear()
    again = await service.list_user_tickets(5)
    assert [t.id for t in again] == [t.id for t in first]


@pytest.mark.asyncio
async def test_list_survives_cache_outage(service, store, future_event, clock, cache):
    seed_ticket(store, future_event, user_id=5, now=clock.now)
    cache.down = True

    tickets = await service.list_user_tickets(5)
    assert len(tickets) == 1


@pytest.mark.asyncio
async def test_event_tickets_visible_to_organizer_only(service, store, future_event, clock):
    seed_ticket(store, future_event, user_id=1, now=clock.now)
    seed_ticket(store, future_event, user_id=2, now=clock.now)

    tickets = await service.list_event_tickets(future_event.id, organizer_id=99)
    assert {t.user_id for t in tickets} == {1, 2}

    with pytest.raises(EventOrganizerRequiredException):
        await service.list_event_tickets(future_event.id, organizer_id=1)
