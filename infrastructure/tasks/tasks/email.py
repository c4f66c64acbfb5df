"""Confirmation emails for ticket purchases and refunds.

Delivery itself belongs to the mail provider integration; these tasks render
the message summary and log that it was rendered.
"""
from __future__ import annotations

from typing import Any

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)

_EMAIL_RETRY = dict(
    bind=True,
    base=BaseTask,
    autoretry_for=(ConnectionError, TimeoutError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)


def _ticket_summary(details: dict[str, Any]) -> str:
    return (
        f"Your ticket {details.get('ticketNumber')} for {details.get('eventTitle')} "
        f"({details.get('quantity', 1)} admission(s)) is confirmed."
    )


def _refund_summary(details: dict[str, Any]) -> str:
    amount = int(details.get("amount") or 0)
    return (
        f"{details.get('percentage')}% refund of {amount / 100:.2f} {details.get('currency')} "
        f"for ticket {details.get('ticketNumber')} has been credited to your wallet."
    )


@shared_task(name="notifications.ticket_confirmation", **_EMAIL_RETRY)
def send_ticket_confirmation_email(self, email: str, details: dict[str, Any]) -> str:
    summary = _ticket_summary(details)
    logger.info(
        "ticket_confirmation_email_rendered",
        email=email,
        ticket_number=details.get("ticketNumber"),
        event_title=details.get("eventTitle"),
        attempt=self.request.retries,
    )
    return summary


@shared_task(name="notifications.refund_confirmation", **_EMAIL_RETRY)
def send_refund_confirmation_email(self, email: str, details: dict[str, Any]) -> str:
    summary = _refund_summary(details)
    logger.info(
        "refund_confirmation_email_rendered",
        email=email,
        ticket_number=details.get("ticketNumber"),
        amount=details.get("amount"),
        currency=details.get("currency"),
        reference=details.get("reference"),
    )
    return summary
