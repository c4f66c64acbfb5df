"""Celery tasks for event-wide refunds (organizer cancelled the event)."""
from __future__ import annotations

import asyncio

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger


logger = get_logger(__name__)


@shared_task(name="refunds.process_event", bind=True, base=BaseTask, max_retries=3, default_retry_delay=60)
def refund_event(self, event_id: int, reason: str):
    from infrastructure.container import worker_scope
    from infrastructure.tasks.notifications import CeleryNotificationDispatcher

    async def _run():
        async with worker_scope(CeleryNotificationDispatcher()) as container:
            return await container.refund_service().refund_event(event_id, reason)

    summary = asyncio.run(_run())
    logger.info(
        "event_refund_task_completed",
        event_id=event_id,
        tickets_processed=summary.tickets_processed,
        failed_tickets=summary.failed_tickets,
    )
    return summary.model_dump(mode="json")
