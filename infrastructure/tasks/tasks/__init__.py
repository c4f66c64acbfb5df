"""Importing this package registers every ticketing task with Celery."""
from . import email  # noqa: F401
from . import payments  # noqa: F401
from . import refunds  # noqa: F401

__all__ = ["email", "payments", "refunds"]
