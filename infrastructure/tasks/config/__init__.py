from .celery import celery_app
from .beat import CELERY_BEAT_SCHEDULE

__all__ = ["celery_app", "CELERY_BEAT_SCHEDULE"]
