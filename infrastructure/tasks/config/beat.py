"""Celery beat schedule.

Payment intents expire in Redis on their own and lost confirmations are
retried through ``payments.reconcile``, so nothing runs periodically yet.
"""
from __future__ import annotations

CELERY_BEAT_SCHEDULE: dict = {}
