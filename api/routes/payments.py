"""
Payments API routes.

Gateway push endpoint. Verifies origin and signature, deduplicates by event
id, then runs the same reconciliation as the client poll. Keep this thin: no
SDK details here.
"""
from __future__ import annotations

import hashlib
import ipaddress
from typing import Optional

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_cache, get_purchase_coordinator
from application.services.purchase_coordinator import PurchaseCoordinator
from core.response import success_response
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import BusinessException, TransientUpstreamFailure
from infrastructure.cache.redis_cache import RedisCache
from infrastructure.external.payments import get_payment_gateway
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)

CHARGE_SUCCESS = "charge.success"
RECONCILE_RETRY_COUNTDOWN = 30


def _ip_permitted(remote_ip: str, allowlist: list[str]) -> bool:
    rip = ipaddress.ip_address(remote_ip)
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif remote_ip == entry:
                return True
        except ValueError:
            continue
    return False


async def _release_dedupe(cache: Optional[RedisCache], key: Optional[str]) -> None:
    """处理未完成时释放去重键，网关重投才能再次进入核实"""
    if cache is None or key is None:
        return
    try:
        await cache.delete(key)
    except TransientUpstreamFailure as exc:
        logger.error("webhook_dedupe_release_failed", key=key, error=exc.message)


@router.post("/webhooks/paystack", summary="Paystack webhook")
async def paystack_webhook(
    request: Request,
    cache: Optional[RedisCache] = Depends(get_cache),
    coordinator: PurchaseCoordinator = Depends(get_purchase_coordinator),
):
    ct = (request.headers.get("content-type") or "").lower()
    if "application/json" not in ct:
        return success_response(message="Unsupported content type")

    # Optional IP allowlist
    allowlist = payment_settings.webhook.ip_allowlist or []
    if allowlist and request.client and request.client.host:
        try:
            permitted = _ip_permitted(request.client.host, allowlist)
        except ValueError:
            return success_response(message="Invalid remote ip")
        if not permitted:
            logger.warning("webhook_ip_rejected", remote_ip=request.client.host)
            return success_response(message="IP not allowed")

    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    event = get_payment_gateway("paystack").parse_webhook(headers, raw_body)

    # Deduplicate by event.id + body hash
    dedupe_key: Optional[str] = None
    if cache is not None:
        body_hash = hashlib.sha256(raw_body or b"{}").hexdigest()
        key = f"webhook:{event.provider}:{event.id}:{body_hash}"
        ttl = max(60, int(payment_settings.webhook.dedupe_ttl_seconds))
        if not await cache.set_if_absent(key, 1, ttl):
            logger.info("webhook_duplicate_ignored", provider=event.provider, event_id=event.id)
            return success_response(
                data={"id": event.id, "type": event.type, "duplicate": True},
                message="Duplicate webhook ignored",
            )
        dedupe_key = key

    if event.type != CHARGE_SUCCESS or not event.reference:
        logger.info("webhook_ignored", provider=event.provider, event_type=event.type)
        return success_response(data={"id": event.id, "type": event.type}, message="Webhook received")

    reference = event.reference
    try:
        try:
            result = await coordinator.reconcile_payment(reference)
        except TransientUpstreamFailure as exc:
            # 状态未改变；交给后台任务重试，同时向网关确认收到
            logger.warning("webhook_reconcile_deferred", reference=reference, error=exc.message)
            TaskDispatcher().reconcile_payment(reference, countdown=RECONCILE_RETRY_COUNTDOWN)
            return success_response(data={"id": event.id, "reference": reference, "deferred": True}, message="Webhook received")
        except BusinessException as exc:
            logger.warning("webhook_reconcile_rejected", reference=reference, code=int(exc.code), error=exc.message)
            return success_response(data={"id": event.id, "reference": reference, "processed": False}, message=exc.message)
    except Exception:
        await _release_dedupe(cache, dedupe_key)
        raise

    return success_response(
        data={
            "id": event.id,
            "reference": reference,
            "processed": True,
            "duplicate": result.duplicate,
            "ticket_id": result.ticket.id if result.ticket else None,
        },
        message=result.message,
    )
