"""
支付状态机

- Payment: PENDING → {SUCCEEDED, FAILED, CANCELLED}，FAILED/CANCELLED → SUCCEEDED
- Order.payment_status 由支付记录推导：任一 SUCCEEDED ⇒ PAID；
  否则最近一次为 FAILED ⇒ FAILED；否则 UNPAID
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from domain.common.exceptions import ConflictException, DomainValidationException, UnprocessableException
from domain.order.entity import Order, OrderPaymentStatus, OrderStatus
from domain.payment.entity import (
    PAYMENT_TRANSITIONS,
    REFUND_TRANSITIONS,
    Payment,
    PaymentStatus,
    RefundStatus,
)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class PaymentStateMachine:

    @staticmethod
    def allowed_from(target: PaymentStatus) -> tuple[PaymentStatus, ...]:
        return tuple(src for src, targets in PAYMENT_TRANSITIONS.items() if target in targets)

    @staticmethod
    def refund_allowed_from(target: RefundStatus) -> tuple[RefundStatus, ...]:
        return tuple(src for src, targets in REFUND_TRANSITIONS.items() if target in targets)

    @staticmethod
    def derive_order_payment_status(payments: Iterable[Payment]) -> OrderPaymentStatus:
        ordered = sorted(payments, key=lambda p: p.created_at or _EPOCH)
        if any(p.status == PaymentStatus.SUCCEEDED for p in ordered):
            return OrderPaymentStatus.PAID
        if ordered and ordered[-1].status == PaymentStatus.FAILED:
            return OrderPaymentStatus.FAILED
        return OrderPaymentStatus.UNPAID

    @staticmethod
    def ensure_can_create_intent(order: Order) -> None:
        """已支付订单再次创建 PaymentIntent ⇒ Conflict；非 PENDING 订单 ⇒ 422"""
        if order.payment_status == OrderPaymentStatus.PAID:
            raise ConflictException(
                "Order has already been paid",
                context={"order_id": order.id},
            )
        if order.status != OrderStatus.PENDING:
            raise DomainValidationException(
                f"Cannot start a payment for an order in status {order.status.value}",
                field="status",
                context={"order_id": order.id},
            )

    @staticmethod
    def ensure_refundable(payment: Payment, amount: int, committed: int) -> None:
        """
        退款额度校验

        committed 为该支付已 SUCCEEDED + PENDING 的退款总额
        """
        if amount <= 0:
            raise UnprocessableException("Refund amount must be greater than 0", field="amount")
        if payment.status != PaymentStatus.SUCCEEDED:
            raise UnprocessableException(
                "Only succeeded payments can be refunded",
                field="paymentId",
            )
        available = payment.amount - committed
        if amount > available:
            raise UnprocessableException(
                f"Refund amount {amount} exceeds refundable amount {available}",
                field="amount",
                context={"payment_id": payment.id, "requested": amount, "available": available},
            )
