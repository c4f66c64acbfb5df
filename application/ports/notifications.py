"""
Notification dispatcher port.

Fire-and-forget: implementations enqueue work and return quickly. Callers
treat any exception as non-fatal and only log it.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class NotificationDispatcher(Protocol):
    def send_ticket_confirmation(self, email: str, details: dict[str, Any]) -> None: ...

    def send_refund_confirmation(self, email: str, details: dict[str, Any]) -> None: ...
