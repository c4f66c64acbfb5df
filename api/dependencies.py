"""
API依赖项 - 认证和服务装配
"""
from typing import AsyncIterator, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from api.middleware.request_id import bind_user_id
from application.ports.cache import KeyValueCache
from application.services.purchase_coordinator import PurchaseCoordinator
from application.services.refund_service import RefundApplicationService
from application.services.ticket_service import TicketApplicationService
from application.services.wallet_service import WalletApplicationService
from core.config import settings
from core.exceptions import TokenExpiredException, TokenInvalidException, UnauthorizedException
from core.logging_config import get_logger
from infrastructure.cache.redis_cache import get_redis_cache
from infrastructure.container import ServiceContainer
from infrastructure.external.payments import get_payment_gateway
from infrastructure.tasks.notifications import CeleryNotificationDispatcher
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


class CurrentUser(BaseModel):
    id: int
    email: Optional[str] = None


def decode_access_token(token: str) -> CurrentUser:
    """校验访问令牌；令牌由账号服务签发，这里只负责验证"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.InvalidTokenError as exc:
        logger.warning("invalid_access_token", error=str(exc))
        raise TokenInvalidException()

    if payload.get("type", "access") != "access":
        raise TokenInvalidException("令牌类型错误")
    sub = payload.get("sub")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise TokenInvalidException("令牌缺少用户标识")
    return CurrentUser(id=user_id, email=payload.get("email"))


async def get_current_user(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> CurrentUser:
    """获取当前登录用户"""
    if bearer_token is None or not bearer_token.credentials:
        raise UnauthorizedException("未提供认证凭据")
    user = decode_access_token(bearer_token.credentials)
    bind_user_id(user.id)
    return user


async def get_cache() -> Optional[KeyValueCache]:
    if not settings.redis.url:
        return None
    return await get_redis_cache()


async def get_container(cache: Optional[KeyValueCache] = Depends(get_cache)) -> ServiceContainer:
    return ServiceContainer(
        SQLAlchemyUnitOfWork,
        cache=cache,
        notifier=CeleryNotificationDispatcher(),
    )


async def get_purchase_coordinator(
    container: ServiceContainer = Depends(get_container),
) -> AsyncIterator[PurchaseCoordinator]:
    gateway = get_payment_gateway()
    container.gateway = gateway
    try:
        yield container.purchase_coordinator()
    finally:
        aclose = getattr(gateway, "aclose", None)
        if aclose is not None:
            await aclose()


async def get_ticket_service(container: ServiceContainer = Depends(get_container)) -> TicketApplicationService:
    return container.ticket_service()


async def get_refund_service(container: ServiceContainer = Depends(get_container)) -> RefundApplicationService:
    return container.refund_service()


async def get_wallet_service(container: ServiceContainer = Depends(get_container)) -> WalletApplicationService:
    return container.wallet_service()
