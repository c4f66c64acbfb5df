"""NotificationDispatcher implementation backed by Celery."""
from __future__ import annotations

from typing import Any

from .utils.dispatcher import TaskDispatcher


class CeleryNotificationDispatcher:
    """Enqueue confirmation emails; the broker call returns immediately."""

    def __init__(self, dispatcher: TaskDispatcher | None = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    def send_ticket_confirmation(self, email: str, details: dict[str, Any]) -> None:
        self._dispatcher.send_ticket_confirmation(email, details)

    def send_refund_confirmation(self, email: str, details: dict[str, Any]) -> None:
        self._dispatcher.send_refund_confirmation(email, details)
