"""Base class for ticketing Celery tasks."""
from __future__ import annotations

from celery import Task

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException

logger = get_logger(__name__)


class BaseTask(Task):
    """Structured lifecycle logging; business errors log their code and message."""

    @staticmethod
    def _error_fields(exc: BaseException) -> dict:
        if isinstance(exc, BusinessException):
            return {"error_code": int(exc.code), "error": exc.message}
        return {"error": str(exc), "error_type": type(exc).__name__}

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "task_retry_scheduled",
            task_id=task_id,
            task_name=self.name,
            retries=self.request.retries,
            **self._error_fields(exc),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "task_failed",
            task_id=task_id,
            task_name=self.name,
            task_kwargs=kwargs,
            **self._error_fields(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info("task_succeeded", task_id=task_id, task_name=self.name)
        super().on_success(retval, task_id, args, kwargs)
