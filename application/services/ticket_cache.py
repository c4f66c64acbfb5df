"""Per-user and per-event ticket list caching (best-effort)."""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from application.ports.cache import KeyValueCache
from core.logging_config import get_logger


logger = get_logger(__name__)


def user_tickets_key(user_id: int) -> str:
    return f"user:{user_id}:tickets"


def event_tickets_key(event_id: int) -> str:
    return f"event:{event_id}:tickets"


def event_key(event_id: int) -> str:
    return f"event:{event_id}"


def wallet_keys(user_id: int) -> tuple[str, str]:
    return f"wallet:{user_id}", f"transactions:{user_id}"


class TicketListCache:
    """
    读缓存只是加速；任何失败都记录后忽略，不影响账本状态
    """

    def __init__(self, cache: Optional[KeyValueCache], *, ttl: int = 300, timeout: float = 2.0) -> None:
        self._cache = cache
        self._ttl = ttl
        self._timeout = timeout

    async def read(self, key: str) -> Optional[Any]:
        if self._cache is None:
            return None
        try:
            return await asyncio.wait_for(self._cache.get(key), timeout=self._timeout)
        except Exception as exc:
            logger.warning("ticket_cache_read_failed", key=key, error=str(exc))
            return None

    async def write(self, key: str, value: Any) -> None:
        if self._cache is None:
            return
        try:
            await asyncio.wait_for(self._cache.put(key, value, self._ttl), timeout=self._timeout)
        except Exception as exc:
            logger.warning("ticket_cache_write_failed", key=key, error=str(exc))

    async def invalidate(self, *keys: str) -> None:
        if self._cache is None or not keys:
            return
        try:
            await asyncio.wait_for(self._cache.delete(*keys), timeout=self._timeout)
        except Exception as exc:
            logger.warning("ticket_cache_invalidate_failed", keys=list(keys), error=str(exc))
