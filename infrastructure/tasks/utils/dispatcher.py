"""Schedule Celery tasks by name so callers never import task modules."""
from __future__ import annotations

from typing import Any, Dict

from core.logging_config import get_logger
from ..config.celery import celery_app


logger = get_logger(__name__)

TICKET_CONFIRMATION_TASK = "notifications.ticket_confirmation"
REFUND_CONFIRMATION_TASK = "notifications.refund_confirmation"
RECONCILE_PAYMENT_TASK = "payments.reconcile"
REFUND_EVENT_TASK = "refunds.process_event"


class TaskDispatcher:
    """Facade the API and notification adapter use to enqueue work."""

    def _send(self, task_name: str, kwargs: Dict[str, Any], **options: Any) -> None:
        result = celery_app.send_task(task_name, kwargs=kwargs, **options)
        logger.debug("task_enqueued", task_name=task_name, task_id=getattr(result, "id", None))

    def send_ticket_confirmation(self, email: str, details: Dict[str, Any]) -> None:
        self._send(TICKET_CONFIRMATION_TASK, {"email": email, "details": details})

    def send_refund_confirmation(self, email: str, details: Dict[str, Any]) -> None:
        self._send(REFUND_CONFIRMATION_TASK, {"email": email, "details": details})

    def reconcile_payment(self, reference: str, *, countdown: int = 0) -> None:
        """Retry reconciliation later, e.g. after a transient gateway failure."""
        self._send(RECONCILE_PAYMENT_TASK, {"reference": reference}, countdown=countdown)

    def refund_event(self, event_id: int, reason: str) -> None:
        self._send(REFUND_EVENT_TASK, {"event_id": event_id, "reason": reason})
