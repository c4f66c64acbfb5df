"""
Celery 应用配置

任务按名称投递（send_task），API 进程无需导入任务模块；
worker 通过 imports 注册 infrastructure.tasks.tasks 下的全部任务。
"""
from __future__ import annotations

import os

from celery import Celery
from kombu import Exchange, Queue

from core.config import settings
from core.logging_config import get_logger
from .beat import CELERY_BEAT_SCHEDULE


logger = get_logger(__name__)

TASK_PACKAGES = ("infrastructure.tasks.tasks",)

# 队列划分：支付补偿优先于邮件，批量退款最后
QUEUE_HIGH = "high"
QUEUE_DEFAULT = "default"
QUEUE_LOW = "low"

_exchange = Exchange("ticketing", type="direct")

celery_app = Celery("eventful_ticketing")

celery_app.conf.update(
    broker_url=os.getenv("CELERY_BROKER_URL") or settings.redis.url,
    result_backend=os.getenv("CELERY_RESULT_BACKEND") or settings.redis.url,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # 任务完成后再确认，worker 崩溃时消息会重新投递；各任务需可重入
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    # 批量退款可能较久，单张处理都在独立事务内，超时中断不会留下半成品
    task_soft_time_limit=300,
    task_time_limit=360,
    result_expires=3600,
    task_default_queue=QUEUE_DEFAULT,
    task_default_exchange="ticketing",
    task_default_routing_key=QUEUE_DEFAULT,
    task_queues=(
        Queue(QUEUE_HIGH, _exchange, routing_key=QUEUE_HIGH),
        Queue(QUEUE_DEFAULT, _exchange, routing_key=QUEUE_DEFAULT),
        Queue(QUEUE_LOW, _exchange, routing_key=QUEUE_LOW),
    ),
    task_routes={
        "payments.reconcile": {"queue": QUEUE_HIGH, "routing_key": QUEUE_HIGH},
        "notifications.*": {"queue": QUEUE_DEFAULT, "routing_key": QUEUE_DEFAULT},
        "refunds.process_event": {"queue": QUEUE_LOW, "routing_key": QUEUE_LOW},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
    imports=TASK_PACKAGES,
)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker_configured=bool(sender.conf.broker_url),
        queues=[q.name for q in sender.conf.task_queues],
    )
