"""
PaymentIntentCache: TTL-bound intent records keyed by payment reference.

Every cache call is bounded by a short timeout. A timeout or connection
error raises TransientUpstreamFailure; it is never read as "no intent".
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Optional, TypeVar

from application.ports.cache import KeyValueCache
from core.logging_config import get_logger
from domain.common.exceptions import TransientUpstreamFailure
from domain.payment.entity import PaymentIntent


logger = get_logger(__name__)

T = TypeVar("T")

INTENT_KEY_PREFIX = "payment"


def intent_key(reference: str) -> str:
    return f"{INTENT_KEY_PREFIX}:{reference}"


class PaymentIntentCache:
    def __init__(self, cache: KeyValueCache, *, default_ttl: int = 3600, timeout: float = 2.0) -> None:
        self._cache = cache
        self._default_ttl = default_ttl
        self._timeout = timeout

    @property
    def default_ttl(self) -> int:
        return self._default_ttl

    async def _bounded(self, op: str, reference: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("intent_cache_timeout", op=op, reference=reference, timeout=self._timeout)
            raise TransientUpstreamFailure("intent_cache", "Intent cache timed out", details={"op": op}) from exc
        except (ConnectionError, OSError) as exc:
            logger.warning("intent_cache_unavailable", op=op, reference=reference, error=str(exc))
            raise TransientUpstreamFailure("intent_cache", details={"op": op}) from exc

    async def put(self, intent: PaymentIntent, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        await self._bounded("put", intent.reference, self._cache.put(intent_key(intent.reference), intent.to_dict(), ttl))
        logger.info("payment_intent_stored", reference=intent.reference, ttl=ttl)

    async def get(self, reference: str) -> Optional[PaymentIntent]:
        raw = await self._bounded("get", reference, self._cache.get(intent_key(reference)))
        if raw is None:
            return None
        return PaymentIntent.from_dict(raw)

    async def mark_failed(self, intent: PaymentIntent, now: Optional[datetime] = None) -> None:
        """网关明确失败：保留意向直到原 TTL 到期"""
        ttl = intent.remaining_ttl(now)
        if ttl <= 0:
            return
        intent.mark_failed()
        await self._bounded("put", intent.reference, self._cache.put(intent_key(intent.reference), intent.to_dict(), ttl))

    async def delete(self, reference: str) -> None:
        await self._bounded("delete", reference, self._cache.delete(intent_key(reference)))
