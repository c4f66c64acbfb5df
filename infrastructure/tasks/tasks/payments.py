"""
Celery tasks for payment compensation: reconcile a reference when the buyer
never returned and the webhook was lost or failed transiently.
"""
from __future__ import annotations

import asyncio

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger
from domain.common.exceptions import TransientUpstreamFailure


logger = get_logger(__name__)


@shared_task(name="payments.reconcile", bind=True, base=BaseTask, max_retries=5, default_retry_delay=30)
def reconcile_payment(self, reference: str):
    from infrastructure.container import worker_scope
    from infrastructure.tasks.notifications import CeleryNotificationDispatcher

    async def _run():
        async with worker_scope(CeleryNotificationDispatcher()) as container:
            return await container.purchase_coordinator().reconcile_payment(reference)

    try:
        result = asyncio.run(_run())
    except TransientUpstreamFailure as exc:
        logger.warning("payment_reconcile_retry", reference=reference, error=exc.message)
        raise self.retry(exc=exc)
    logger.info("payment_reconciled_in_background", reference=reference, duplicate=result.duplicate)
    return {"success": result.success, "duplicate": result.duplicate, "ticket_id": result.ticket.id if result.ticket else None}
