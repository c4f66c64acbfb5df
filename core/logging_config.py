"""
Structlog 日志配置

structlog 与标准库 logging 共用同一处理链：
应用代码通过 get_logger() 输出键值事件，uvicorn / celery / sqlalchemy
的标准库日志经 ProcessorFormatter 以相同格式渲染。
"""
import json
import logging
from typing import Any, List, Optional

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings


# 这些键的值只保留掩码后的形式
REDACTED_KEYS = frozenset({"authorization", "secret_key", "qr_payload", "signature"})

# 第三方库默认过于啰嗦
_QUIET_LOGGERS = ("httpx", "httpcore", "celery.app.trace")


def _mask(value: Any) -> str:
    text = str(value)
    if len(text) <= 8:
        return "***"
    return f"{text[:4]}***{text[-2:]}"


def redact_sensitive(_, __, event_dict: dict) -> dict:
    for key in REDACTED_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = _mask(event_dict[key])
    return event_dict


def add_service(_, __, event_dict: dict) -> dict:
    event_dict.setdefault("service", settings.PROJECT_NAME)
    return event_dict


def _json_dumps(obj, default=None, **kwargs):
    # structlog 会传入 default/sort_keys 等参数
    return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)


def get_renderer() -> Any:
    if settings.DEBUG:
        return ConsoleRenderer(colors=True)
    return JSONRenderer(serializer=_json_dumps)


def configure_logging(level: Optional[int] = None) -> None:
    """配置 structlog 并接管根 logger；重复调用是安全的"""
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        add_service,
        redact_sensitive,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*shared_pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[ProcessorFormatter.remove_processors_meta, get_renderer()],
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level if level is not None else (logging.DEBUG if settings.DEBUG else logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if not settings.database.echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
