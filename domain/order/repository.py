"""
订单仓储接口

所有状态变更都以条件写的形式表达（UPDATE ... WHERE status IN (...)），
返回值表示本次写入是否生效。
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from .entity import Order, OrderPaymentStatus, OrderStatus


class OrderRepository(ABC):
    """Contract for persisting and querying orders (soft-deleted rows excluded)."""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单及订单项"""
        ...

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    async def list(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> list[Order]:
        ...

    @abstractmethod
    async def count(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> int:
        ...

    @abstractmethod
    async def list_stale_pending(self, older_than: datetime, limit: int) -> list[Order]:
        """列出创建时间早于 older_than 的 PENDING 订单（最旧优先）"""
        ...

    @abstractmethod
    async def transition_status(
        self,
        order_id: str,
        *,
        expected: Iterable[OrderStatus],
        target: OrderStatus,
        payment_status: Optional[OrderPaymentStatus] = None,
        cancel_reason: Optional[str] = None,
    ) -> bool:
        """条件更新订单状态；仅当当前状态属于 expected 时生效"""
        ...

    @abstractmethod
    async def set_payment_status(
        self,
        order_id: str,
        *,
        target: OrderPaymentStatus,
        unless: Iterable[OrderPaymentStatus] = (),
    ) -> bool:
        """条件更新订单支付状态；当前支付状态属于 unless 时不写入"""
        ...
