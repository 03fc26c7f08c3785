"""Common base task for Celery jobs"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class BaseTask(Task):
    """统一的失败/成功日志，以及在同步 worker 中运行协程的辅助方法"""

    def run_async(self, factory: Callable[[], Awaitable[T]]) -> T:
        # 每次执行使用独立事件循环，数据库等资源在协程内打开并释放
        return asyncio.run(factory())

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            exc=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval: Any, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "celery_task_success",
            task_id=task_id,
            task_name=self.name,
            result=retval if isinstance(retval, dict) else None,
        )
        super().on_success(retval, task_id, args, kwargs)
