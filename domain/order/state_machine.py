"""
订单状态机 - 合法状态转换 + 归属校验
"""
from __future__ import annotations

from domain.common.exceptions import ForbiddenException
from domain.common.principal import Principal
from domain.order.entity import (
    ORDER_TRANSITIONS,
    Order,
    OrderStatus,
    ensure_order_transition,
)


class OrderStateMachine:
    """
    PENDING → {CONFIRMED, CANCELLED}；CONFIRMED / CANCELLED 为终态。

    仓储层的条件更新使用 `allowed_from(target)` 作为 WHERE 条件，
    因此并发的两个转换只有一个能生效。
    """

    @staticmethod
    def allowed_from(target: OrderStatus) -> tuple[OrderStatus, ...]:
        return tuple(src for src, targets in ORDER_TRANSITIONS.items() if target in targets)

    @staticmethod
    def is_terminal(status: OrderStatus) -> bool:
        return not ORDER_TRANSITIONS.get(status)

    @staticmethod
    def ensure_transition(current: OrderStatus, target: OrderStatus) -> None:
        ensure_order_transition(current, target)

    @staticmethod
    def authorize(order: Order, principal: Principal) -> None:
        """只有订单所有者或管理员可以读取/修改订单"""
        principal.ensure_owner_or_admin(order.user_id)

    @classmethod
    def authorize_transition(cls, order: Order, target: OrderStatus, principal: Principal) -> None:
        cls.authorize(order, principal)
        # 手动确认（线下结算）只允许管理员
        if target == OrderStatus.CONFIRMED and not principal.is_admin:
            raise ForbiddenException("Only administrators can confirm orders manually")
        cls.ensure_transition(order.status, target)
