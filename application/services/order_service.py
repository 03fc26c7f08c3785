"""
订单应用服务 - 下单、查询、状态变更与超时关单
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from application.dtos.orders import OrderCreate, OrderOut, OrderStatusUpdate, PaymentOut
from application.ports.event_publisher import EventPublisher, publish_events
from application.services.checkout_service import place_order
from application.services.invoice_service import issue_invoice
from core.config import settings
from core.logging_config import get_logger
from domain.common.events import EventCollector, Topics
from domain.common.exceptions import (
    IllegalTransitionException,
    NotFoundException,
    UnprocessableException,
)
from domain.common.principal import Principal
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderPaymentStatus, OrderStatus
from domain.order.state_machine import OrderStateMachine
from domain.payment.entity import PaymentStatus


logger = get_logger(__name__)

ABANDONED_REASON = "abandoned_checkout"


class OrderService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        publisher: EventPublisher,
    ) -> None:
        self._uow_factory = uow_factory
        self._publisher = publisher

    async def create(self, principal: Principal, req: OrderCreate) -> OrderOut:
        events = EventCollector()
        async with self._uow_factory() as uow:
            order = await place_order(
                uow,
                user_id=principal.user_id,
                items=req.items,
                address=req.shipping_address,
                shipping_rate_id=req.shipping_rate_id,
                coupon_code=req.coupon_code,
                currency=(req.currency or settings.checkout.default_currency).upper(),
                events=events,
            )
        await publish_events(self._publisher, events.clear_events())
        return OrderOut.model_validate(order)

    async def list(
        self,
        principal: Principal,
        *,
        page: int,
        size: int,
        status: Optional[OrderStatus] = None,
    ) -> tuple[list[OrderOut], int]:
        user_id = None if principal.is_admin else principal.user_id
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.orders.list(user_id=user_id, status=status, skip=(page - 1) * size, limit=size)
            total = await uow.orders.count(user_id=user_id, status=status)
        return [OrderOut.model_validate(o) for o in orders], total

    async def get(self, principal: Principal, order_id: str) -> OrderOut:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
            if order is None:
                raise NotFoundException("Order", order_id)
            OrderStateMachine.authorize(order, principal)
            payments = await uow.payments.list_by_order(order_id)
        dto = OrderOut.model_validate(order)
        dto.payments = [PaymentOut.model_validate(p) for p in payments]
        return dto

    async def update_status(self, principal: Principal, order_id: str, req: OrderStatusUpdate) -> OrderOut:
        events = EventCollector()
        async with self._uow_factory() as uow:
            order = await uow.orders.get_by_id(order_id)
            if order is None:
                raise NotFoundException("Order", order_id)
            OrderStateMachine.authorize_transition(order, req.status, principal)
            if req.status == OrderStatus.CANCELLED:
                order = await self._cancel(uow, order, req.reason or "cancelled_by_user", events)
            else:
                order = await self._confirm_manually(uow, order, principal, events)
        await publish_events(self._publisher, events.clear_events())
        return OrderOut.model_validate(order)

    async def cancel(self, principal: Principal, order_id: str, reason: Optional[str] = None) -> OrderOut:
        return await self.update_status(
            principal, order_id, OrderStatusUpdate(status=OrderStatus.CANCELLED, reason=reason)
        )

    async def _cancel(
        self,
        uow: AbstractUnitOfWork,
        order: Order,
        reason: str,
        events: EventCollector,
    ) -> Order:
        won = await uow.orders.transition_status(
            order.id,
            expected=OrderStateMachine.allowed_from(OrderStatus.CANCELLED),
            target=OrderStatus.CANCELLED,
            cancel_reason=reason,
        )
        current = await uow.orders.get_by_id(order.id)
        if not won:
            # 读取与写入之间被 webhook 抢先转换
            raise IllegalTransitionException("order", current.status.value, OrderStatus.CANCELLED.value)
        cancelled = await uow.payments.cancel_pending_for_order(order.id)
        events.record(Topics.ORDER_CANCELLED, order.id, userId=order.user_id, reason=reason)
        logger.info("order_cancelled", order_id=order.id, reason=reason, payments_cancelled=cancelled)
        return current

    async def _confirm_manually(
        self,
        uow: AbstractUnitOfWork,
        order: Order,
        principal: Principal,
        events: EventCollector,
    ) -> Order:
        """管理员手动确认：必须已有成功的支付"""
        payments = await uow.payments.list_by_order(order.id)
        if not any(p.status == PaymentStatus.SUCCEEDED for p in payments):
            raise UnprocessableException(
                "Order has no succeeded payment",
                field="status",
                context={"order_id": order.id},
            )
        won = await uow.orders.transition_status(
            order.id,
            expected=OrderStateMachine.allowed_from(OrderStatus.CONFIRMED),
            target=OrderStatus.CONFIRMED,
            payment_status=OrderPaymentStatus.PAID,
        )
        current = await uow.orders.get_by_id(order.id)
        if not won:
            raise IllegalTransitionException("order", current.status.value, OrderStatus.CONFIRMED.value)
        events.record(
            Topics.ORDER_CONFIRMED,
            order.id,
            userId=order.user_id,
            totalAmount=order.total_amount,
            currency=order.currency,
        )
        logger.info("order_confirmed", order_id=order.id, source="manual", by=principal.user_id)
        await issue_invoice(uow, current, events)
        return current

    async def close_abandoned_checkouts(self, now: Optional[datetime] = None) -> dict[str, int]:
        """
        关闭超时未支付的订单

        每个订单单独一个事务；条件写失败（例如 webhook 刚确认）计为 skipped，
        单个订单出错不影响其余订单。
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=settings.checkout.abandoned_after_minutes)
        async with self._uow_factory(readonly=True) as uow:
            stale = await uow.orders.list_stale_pending(cutoff, settings.checkout.abandoned_batch_size)

        stats = {"processed": 0, "closed": 0, "skipped": 0, "errors": 0}
        for order in stale:
            stats["processed"] += 1
            events = EventCollector()
            try:
                async with self._uow_factory() as uow:
                    won = await uow.orders.transition_status(
                        order.id,
                        expected=(OrderStatus.PENDING,),
                        target=OrderStatus.CANCELLED,
                        cancel_reason=ABANDONED_REASON,
                    )
                    if won:
                        await uow.payments.cancel_pending_for_order(order.id)
                        events.record(
                            Topics.ORDER_ABANDONED,
                            order.id,
                            userId=order.user_id,
                            createdAt=order.created_at.isoformat() if order.created_at else None,
                        )
            except Exception as exc:  # noqa: BLE001
                stats["errors"] += 1
                logger.error("abandoned_checkout_close_failed", order_id=order.id, error=str(exc), exc_info=True)
                continue
            if won:
                stats["closed"] += 1
                await publish_events(self._publisher, events.clear_events())
            else:
                stats["skipped"] += 1

        logger.info("abandoned_checkouts_closed", cutoff=cutoff.isoformat(), **stats)
        return stats
