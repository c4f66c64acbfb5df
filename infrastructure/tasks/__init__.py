"""Background jobs: confirmation emails, payment reconciliation, event refunds."""
from .config.celery import celery_app
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher"]
