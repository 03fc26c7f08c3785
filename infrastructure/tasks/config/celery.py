"""Celery application configuration"""
from __future__ import annotations

import os
from core.logging_config import get_logger
from celery import Celery
from kombu import Queue

from core.config import settings
from .beat import CELERY_BEAT_SCHEDULE


# Task modules are discovered via this tuple
CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)


celery_app = Celery("order_payment")

celery_app.conf.update(
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # 任务完成后再确认，worker 崩溃时任务会被重新投递
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_default_retry_delay=5,
    # 清理任务走独立队列
    task_queues=(
        Queue("default"),
        Queue("housekeeping"),
    ),
    task_routes={
        "orders.*": {"queue": "housekeeping"},
    },
    # 单次清理批次的硬上限，超时后 worker 终止任务
    task_time_limit=max(60, settings.checkout.abandoned_schedule_seconds - 60),
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = CELERY_IMPORTS
celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=sender.conf.broker_url,
        beat_entries=sorted(sender.conf.beat_schedule or {}),
    )
