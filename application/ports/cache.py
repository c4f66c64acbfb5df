"""
Key-value cache port.

One explicit write method with a TTL. ``get`` returns None for absent or
expired keys; absence after expiry is a normal outcome, not an error.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class KeyValueCache(Protocol):
    async def put(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def get(self, key: str) -> Optional[Any]: ...

    async def delete(self, *keys: str) -> int: ...
