"""Order housekeeping tasks"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from celery import shared_task

from ..utils.base_task import BaseTask
from application.services.order_service import OrderService
from core.logging_config import get_logger
from infrastructure.database import Database
from infrastructure.external.messaging import build_event_publisher
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

logger = get_logger(__name__)


async def close_abandoned(database: Database, publisher, now: Optional[datetime] = None) -> dict[str, int]:
    """关闭超时未支付订单（任务与测试共用）"""

    def uow_factory(**kwargs) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(database.session_factory, **kwargs)

    service = OrderService(uow_factory, publisher)
    return await service.close_abandoned_checkouts(now=now)


@shared_task(
    name="orders.close_abandoned_checkouts",
    bind=True,
    base=BaseTask,
    max_retries=3,
    default_retry_delay=60,
)
def close_abandoned_checkouts(self) -> dict[str, int]:
    async def _run() -> dict[str, int]:
        # worker 进程不共享 API 的数据库句柄，每次执行独立打开
        database = Database().connect()
        publisher = build_event_publisher()
        try:
            return await close_abandoned(database, publisher)
        finally:
            await publisher.aclose()
            await database.dispose()

    try:
        return self.run_async(_run)
    except Exception as exc:
        logger.error("abandoned_checkout_job_failed", error=str(exc))
        raise self.retry(exc=exc)
