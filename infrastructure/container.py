"""
服务装配 - 将端口实现注入应用服务

API 进程复用全局引擎与 Redis 连接；Celery 任务每次 asyncio.run 都是新的事件循环，
因此通过 worker_scope() 构建独立的引擎、Redis 客户端与网关并在结束时释放。
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from redis import asyncio as aioredis
from sqlalchemy.ext.asyncio import async_sessionmaker

from application.ports.cache import KeyValueCache
from application.ports.notifications import NotificationDispatcher
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_intent_cache import PaymentIntentCache
from application.services.purchase_coordinator import PurchaseCoordinator
from application.services.refund_service import RefundApplicationService
from application.services.ticket_cache import TicketListCache
from application.services.ticket_codes import TicketCodec
from application.services.ticket_service import TicketApplicationService
from application.services.wallet_service import WalletApplicationService
from core.config import settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.cache.redis_cache import RedisCache
from infrastructure.database import build_engine
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import uow_factory_for


def build_codec() -> TicketCodec:
    return TicketCodec(settings.SECRET_KEY or "", settings.ticketing.api_base_url)


class ServiceContainer:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        cache: Optional[KeyValueCache] = None,
        gateway: Optional[PaymentGateway] = None,
        notifier: Optional[NotificationDispatcher] = None,
        codec: Optional[TicketCodec] = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.cache = cache
        self.gateway = gateway
        self.notifier = notifier
        self.codec = codec or build_codec()
        self.list_cache = TicketListCache(
            cache,
            ttl=settings.ticketing.list_cache_ttl_seconds,
            timeout=settings.ticketing.cache_timeout_seconds,
        )

    def intent_cache(self) -> PaymentIntentCache:
        if self.cache is None:
            raise RuntimeError("支付意向需要可用的缓存")
        return PaymentIntentCache(
            self.cache,
            default_ttl=settings.ticketing.intent_ttl_seconds,
            timeout=settings.ticketing.cache_timeout_seconds,
        )

    def purchase_coordinator(self) -> PurchaseCoordinator:
        if self.gateway is None:
            raise RuntimeError("未配置支付网关")
        return PurchaseCoordinator(
            self.uow_factory,
            self.gateway,
            self.intent_cache(),
            self.codec,
            self.notifier,
            self.list_cache,
            callback_url=settings.ticketing.payment_callback_url,
        )

    def ticket_service(self) -> TicketApplicationService:
        return TicketApplicationService(self.uow_factory, self.codec, self.list_cache)

    def refund_service(self) -> RefundApplicationService:
        return RefundApplicationService(
            self.uow_factory,
            self.notifier,
            self.list_cache,
            batch_size=settings.ticketing.bulk_refund_batch_size,
        )

    def wallet_service(self) -> WalletApplicationService:
        return WalletApplicationService(self.uow_factory, currency=settings.ticketing.currency)


@asynccontextmanager
async def worker_scope(notifier: Optional[NotificationDispatcher] = None) -> AsyncIterator[ServiceContainer]:
    """为单次后台任务构建完整的依赖并在退出时释放"""
    engine = build_engine(settings.database.url, echo=settings.database.echo)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    client = None
    cache = None
    if settings.redis.url:
        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.redis.socket_timeout,
            socket_connect_timeout=settings.redis.socket_timeout,
        )
        cache = RedisCache(client, namespace=settings.redis.namespace)
    gateway = get_payment_gateway()
    try:
        yield ServiceContainer(
            uow_factory_for(session_factory),
            cache=cache,
            gateway=gateway,
            notifier=notifier,
        )
    finally:
        aclose = getattr(gateway, "aclose", None)
        if aclose is not None:
            await aclose()
        if client is not None:
            await client.aclose()
        await engine.dispose()
