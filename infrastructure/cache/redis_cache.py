"""Redis缓存实现（KeyValueCache 端口的适配器）"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from core.config import settings
from domain.common.exceptions import TransientUpstreamFailure


def _json_dumps(value: Any) -> str:
    """将任意对象序列化为JSON字符串"""
    return json.dumps(value, default=str)


def _json_loads(value: Optional[str]) -> Any:
    """将JSON字符串反序列化为对象"""
    if value is None:
        return None
    return json.loads(value)


class RedisCache:
    """基于Redis的简单缓存实现"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Any:
        try:
            value = await self._client.get(self._format_key(key))
        except RedisError as exc:
            raise TransientUpstreamFailure("redis", details={"op": "get"}) from exc
        if value is None:
            return None
        return _json_loads(value)

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        """写入并设置过期时间；ttl_seconds <= 0 视为调用错误"""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        try:
            await self._client.set(self._format_key(key), _json_dumps(value), ex=ttl_seconds)
        except RedisError as exc:
            raise TransientUpstreamFailure("redis", details={"op": "put"}) from exc

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self._client.delete(*(self._format_key(k) for k in keys)))
        except RedisError as exc:
            raise TransientUpstreamFailure("redis", details={"op": "delete"}) from exc

    async def set_if_absent(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """SET NX，用于 webhook 去重"""
        try:
            created = await self._client.set(self._format_key(key), _json_dumps(value), ex=ttl_seconds, nx=True)
        except RedisError as exc:
            raise TransientUpstreamFailure("redis", details={"op": "set_if_absent"}) from exc
        return bool(created)

    async def ping(self) -> bool:
        return bool(await self._client.ping())


_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisCache] = None
_lock = asyncio.Lock()


async def init_redis_cache(namespace: Optional[str] = None) -> RedisCache:
    """初始化Redis缓存实例"""
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis缓存")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
            socket_timeout=settings.redis.socket_timeout,
            socket_connect_timeout=settings.redis.socket_timeout,
        )

        _redis_client = client
        _cache_instance = RedisCache(
            client=client,
            namespace=namespace or settings.redis.namespace,
        )
        return _cache_instance


async def get_redis_cache() -> RedisCache:
    """获取全局Redis缓存实例"""
    if _cache_instance is None:
        return await init_redis_cache()
    return _cache_instance


async def shutdown_redis_cache() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        _cache_instance = None
