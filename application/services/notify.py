"""Best-effort notification dispatch."""
from __future__ import annotations

from typing import Any, Optional

from application.ports.notifications import NotificationDispatcher
from core.logging_config import get_logger


logger = get_logger(__name__)


def dispatch_safely(
    notifier: Optional[NotificationDispatcher],
    method: str,
    email: str,
    details: dict[str, Any],
) -> bool:
    """调用通知端口；失败只记录日志，绝不向上抛出"""
    if notifier is None:
        return False
    try:
        getattr(notifier, method)(email, details)
        return True
    except Exception as exc:
        logger.warning("notification_dispatch_failed", method=method, email=email, error=str(exc))
        return False
