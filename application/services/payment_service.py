"""
Application service orchestrating payment use-cases.

This module depends only on the application PaymentGateway port and DTOs.
Gateway implementations are provided by infrastructure and injected from the
composition root (API/tasks), keeping dependencies one-way.

`open_payment` and `settle_payment` are shared with checkout and webhook
handling so every path starts and settles payments the same way.
"""
from __future__ import annotations

import hashlib
from typing import Callable, Optional

from application.dtos.orders import CreateIntentRequest, CreateIntentResponse, PaymentOut
from application.dtos.payments import CreateIntent
from application.ports.payment_gateway import PaymentGateway
from application.services.invoice_service import issue_invoice
from core.logging_config import get_logger
from domain.common.events import EventCollector, Topics
from domain.common.exceptions import BusinessException, NotFoundException, UnprocessableException
from domain.common.principal import Principal
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderPaymentStatus, OrderStatus
from domain.order.state_machine import OrderStateMachine
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.state_machine import PaymentStateMachine


logger = get_logger(__name__)


def idempotency_key(operation: str, *parts: object) -> str:
    # 由业务标识稳定派生（不含时间戳），网关侧据此去重
    base = "|".join([operation, *(str(p) for p in parts)])
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


async def open_payment(uow: AbstractUnitOfWork, gateway: PaymentGateway, order: Order) -> Payment:
    """创建网关 PaymentIntent 并写入 PENDING 支付记录（调用方负责提交事务）"""
    if order.total_amount <= 0:
        raise UnprocessableException(
            "Order total must be greater than 0 to start a payment",
            field="totalAmount",
            context={"order_id": order.id},
        )
    payment = Payment.start(
        order_id=order.id,
        amount=order.total_amount,
        currency=order.currency,
        provider=gateway.provider,
    )
    request = CreateIntent(
        order_id=order.id,
        payment_id=payment.id,
        amount=payment.amount,
        currency=payment.currency,
        idempotency_key=idempotency_key("create", order.id, payment.id, payment.amount, payment.currency),
    )
    try:
        intent = await gateway.create_intent(request)
    except BusinessException as exc:
        logger.warning("checkout_gateway_failed", order_id=order.id, error=exc.message)
        raise
    except Exception as exc:
        logger.error("checkout_gateway_failed", order_id=order.id, error=str(exc))
        raise UnprocessableException(
            f"Payment gateway error: {exc}",
            context={"order_id": order.id},
        ) from exc

    payment.gateway_intent_id = intent.intent_id
    payment.client_secret = intent.client_secret
    payment = await uow.payments.create(payment)
    await refresh_order_payment_status(uow, order.id)
    # 创建接口返回 client_secret，但不落日志
    logger.info(
        "payment_intent_created",
        order_id=order.id,
        payment_id=payment.id,
        intent_id=intent.intent_id,
        amount=payment.amount,
    )
    return payment


async def refresh_order_payment_status(uow: AbstractUnitOfWork, order_id: str) -> OrderPaymentStatus:
    """按支付记录重新推导订单支付状态（同一事务内）；已是 PAID 的订单不会被改写"""
    payments = await uow.payments.list_by_order(order_id)
    derived = PaymentStateMachine.derive_order_payment_status(payments)
    await uow.orders.set_payment_status(order_id, target=derived, unless=(OrderPaymentStatus.PAID,))
    return derived


async def settle_payment(
    uow: AbstractUnitOfWork,
    payment: Payment,
    events: EventCollector,
    *,
    source: str,
    payment_from: Optional[tuple[PaymentStatus, ...]] = None,
) -> Optional[Order]:
    """
    支付成功后的对账（confirm 与 webhook 共用）

    1. Payment → SUCCEEDED（条件写；payment_from 可收窄允许的起始状态）
    2. Order PENDING → CONFIRMED + PAID（条件写），赢得转换的一方开具发票
    3. 订单已取消时只记录 PAID 并告警，由人工退款
    重复调用时两次条件写都不生效，不产生任何事件。
    支付最终不是 SUCCEEDED 时（条件写落空）订单保持不变。
    """
    payment_won = await uow.payments.transition_status(
        payment.id,
        expected=payment_from or PaymentStateMachine.allowed_from(PaymentStatus.SUCCEEDED),
        target=PaymentStatus.SUCCEEDED,
    )
    if not payment_won:
        current = await uow.payments.get_by_id(payment.id)
        if current is None or current.status != PaymentStatus.SUCCEEDED:
            logger.info(
                "payment_settlement_rejected",
                payment_id=payment.id,
                order_id=payment.order_id,
                status=current.status.value if current else None,
                source=source,
            )
            return await uow.orders.get_by_id(payment.order_id)
    if payment_won:
        events.record(
            Topics.PAYMENT_SUCCEEDED,
            payment.id,
            orderId=payment.order_id,
            amount=payment.amount,
            currency=payment.currency,
        )
        logger.info(
            "payment_status_changed",
            payment_id=payment.id,
            order_id=payment.order_id,
            status=PaymentStatus.SUCCEEDED.value,
            source=source,
        )

    order_won = await uow.orders.transition_status(
        payment.order_id,
        expected=OrderStateMachine.allowed_from(OrderStatus.CONFIRMED),
        target=OrderStatus.CONFIRMED,
        payment_status=OrderPaymentStatus.PAID,
    )
    order = await uow.orders.get_by_id(payment.order_id)
    if order is None:
        return None

    if order_won:
        events.record(
            Topics.ORDER_CONFIRMED,
            order.id,
            userId=order.user_id,
            paymentId=payment.id,
            totalAmount=order.total_amount,
            currency=order.currency,
        )
        logger.info("order_confirmed", order_id=order.id, payment_id=payment.id, source=source)
        await issue_invoice(uow, order, events)
    elif payment_won and order.status == OrderStatus.CANCELLED:
        await uow.orders.set_payment_status(order.id, target=OrderPaymentStatus.PAID)
        order.payment_status = OrderPaymentStatus.PAID
        logger.warning(
            "payment_succeeded_on_cancelled_order",
            order_id=order.id,
            payment_id=payment.id,
            source=source,
        )
    elif payment_won:
        # 订单已由另一笔支付确认，本笔需要人工退款
        logger.warning(
            "payment_succeeded_on_confirmed_order",
            order_id=order.id,
            payment_id=payment.id,
            source=source,
        )
    else:
        logger.info("payment_settlement_noop", order_id=order.id, payment_id=payment.id, source=source)
    return order


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway

    async def create_intent(self, principal: Principal, req: CreateIntentRequest) -> CreateIntentResponse:
        """为待支付订单发起新的支付尝试（失败后重试）"""
        async with self._uow_factory() as uow:
            order = await uow.orders.get_by_id(req.order_id)
            if order is None:
                raise NotFoundException("Order", req.order_id)
            OrderStateMachine.authorize(order, principal)
            PaymentStateMachine.ensure_can_create_intent(order)
            payment = await open_payment(uow, self.gateway, order)
        return CreateIntentResponse(
            payment_id=payment.id,
            order_id=order.id,
            payment_intent_id=payment.gateway_intent_id,
            client_secret=payment.client_secret,
            amount=payment.amount,
            currency=payment.currency,
        )

    async def list(
        self,
        principal: Principal,
        *,
        page: int,
        size: int,
        status: Optional[PaymentStatus] = None,
    ) -> tuple[list[PaymentOut], int]:
        # 管理员查看全部，普通用户只看自己订单的支付
        user_id = None if principal.is_admin else principal.user_id
        async with self._uow_factory(readonly=True) as uow:
            payments = await uow.payments.list(
                status=status, user_id=user_id, skip=(page - 1) * size, limit=size
            )
            total = await uow.payments.count(status=status, user_id=user_id)
        return [PaymentOut.model_validate(p) for p in payments], total

    async def get(self, principal: Principal, payment_id: str) -> PaymentOut:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payments.get_by_id(payment_id)
            if payment is None:
                raise NotFoundException("Payment", payment_id)
            order = await uow.orders.get_by_id(payment.order_id)
        if order is None:
            raise NotFoundException("Order", payment.order_id)
        OrderStateMachine.authorize(order, principal)
        return PaymentOut.model_validate(payment)

    async def list_by_order(self, principal: Principal, order_id: str) -> list[PaymentOut]:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
            if order is None:
                raise NotFoundException("Order", order_id)
            OrderStateMachine.authorize(order, principal)
            payments = await uow.payments.list_by_order(order_id)
        return [PaymentOut.model_validate(p) for p in payments]
