import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from application.services.payment_intent_cache import PaymentIntentCache, intent_key
from domain.common.exceptions import TransientUpstreamFailure
from domain.common.money import Money
from domain.payment.entity import IntentStatus, PaymentIntent
from tests.fakes import DictCache


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _intent(ttl: int = 3600) -> PaymentIntent:
    return PaymentIntent.open(
        reference="ref_1",
        event_id=1,
        user_id=7,
        quantity=2,
        total_amount=Money(10000),
        buyer_email="buyer@example.com",
        ttl_seconds=ttl,
        now=NOW,
    )


class SlowCache(DictCache):
    async def get(self, key):
        await asyncio.sleep(1)
        return None


@pytest.mark.asyncio
async def test_put_and_get_round_trip_with_ttl():
    cache = DictCache()
    intents = PaymentIntentCache(cache, default_ttl=900)

    await intents.put(_intent())
    loaded = await intents.get("ref_1")

    assert cache.ttls[intent_key("ref_1")] == 900
    assert loaded.total_amount == Money(10000)
    assert loaded.unit_price == Money(5000)
    assert loaded.buyer_email == "buyer@example.com"


@pytest.mark.asyncio
async def test_missing_intent_is_none():
    assert await PaymentIntentCache(DictCache()).get("nope") is None


@pytest.mark.asyncio
async def test_timeout_is_transient_not_absent():
    intents = PaymentIntentCache(SlowCache(), timeout=0.01)

    with pytest.raises(TransientUpstreamFailure):
        await intents.get("ref_1")


@pytest.mark.asyncio
async def test_connection_error_is_transient():
    cache = DictCache()
    cache.down = True

    with pytest.raises(TransientUpstreamFailure):
        await PaymentIntentCache(cache).put(_intent())


@pytest.mark.asyncio
async def test_mark_failed_keeps_remaining_ttl():
    cache = DictCache()
    intents = PaymentIntentCache(cache)
    intent = _intent(ttl=3600)

    await intents.mark_failed(intent, now=NOW + timedelta(minutes=50))

    assert cache.ttls[intent_key("ref_1")] == 600
    assert (await intents.get("ref_1")).status == IntentStatus.FAILED


@pytest.mark.asyncio
async def test_mark_failed_after_expiry_writes_nothing():
    cache = DictCache()
    await PaymentIntentCache(cache).mark_failed(_intent(ttl=60), now=NOW + timedelta(minutes=5))
    assert cache.data == {}
