from datetime import datetime, timedelta, timezone

import pytest

from domain.common.exceptions import (
    ConflictException,
    ForbiddenException,
    IllegalTransitionException,
    UnprocessableException,
    ValidationException,
)
from domain.common.principal import Principal
from domain.invoice.entity import format_invoice_number
from domain.order.entity import Order, OrderItem, OrderPaymentStatus, OrderStatus, ShippingAddress
from domain.order.state_machine import OrderStateMachine
from domain.payment.entity import Payment, PaymentStatus, RefundStatus
from domain.payment.state_machine import PaymentStateMachine
from domain.shipping.entity import Shipment, ShipmentStatus


def _order(**kwargs) -> Order:
    data = dict(
        id="order-1",
        user_id="user-1",
        status=OrderStatus.PENDING,
        payment_status=OrderPaymentStatus.UNPAID,
        subtotal=5000,
        tax_amount=1000,
        shipping_amount=500,
        discount_amount=0,
        total_amount=6500,
        currency="gbp",
        shipping_address=ShippingAddress(line1="1 High St", city="London", postcode="SW1A 1AA", country="gb"),
    )
    data.update(kwargs)
    return Order(**data)


def _payment(status=PaymentStatus.PENDING, created_at=None, amount=6500) -> Payment:
    return Payment(
        id="pay-1",
        order_id="order-1",
        gateway_intent_id="pi_1",
        amount=amount,
        currency="GBP",
        status=status,
        created_at=created_at,
    )


def test_order_allowed_from():
    assert OrderStateMachine.allowed_from(OrderStatus.CONFIRMED) == (OrderStatus.PENDING,)
    assert OrderStateMachine.allowed_from(OrderStatus.CANCELLED) == (OrderStatus.PENDING,)
    assert OrderStateMachine.allowed_from(OrderStatus.PENDING) == ()


def test_order_terminal_states_reject_transitions():
    assert OrderStateMachine.is_terminal(OrderStatus.CONFIRMED)
    assert OrderStateMachine.is_terminal(OrderStatus.CANCELLED)
    with pytest.raises(IllegalTransitionException):
        OrderStateMachine.ensure_transition(OrderStatus.CANCELLED, OrderStatus.CONFIRMED)
    with pytest.raises(IllegalTransitionException):
        OrderStateMachine.ensure_transition(OrderStatus.CONFIRMED, OrderStatus.CANCELLED)


def test_order_total_must_match_breakdown():
    with pytest.raises(UnprocessableException):
        _order(total_amount=6400)
    order = _order(discount_amount=100, total_amount=6400)
    assert order.currency == "GBP"
    assert order.shipping_address.country == "GB"


def test_order_item_rejects_non_positive_quantity():
    with pytest.raises(ValidationException):
        OrderItem(product_id="p", quantity=0, unit_price=100)
    assert OrderItem(product_id="p", quantity=3, unit_price=250).total_price == 750


def test_manual_confirmation_requires_admin():
    order = _order()
    customer = Principal(user_id="user-1")
    with pytest.raises(ForbiddenException):
        OrderStateMachine.authorize_transition(order, OrderStatus.CONFIRMED, customer)
    OrderStateMachine.authorize_transition(order, OrderStatus.CANCELLED, customer)
    OrderStateMachine.authorize_transition(order, OrderStatus.CONFIRMED, Principal("admin", "ADMIN"))


def test_other_customers_cannot_touch_order():
    with pytest.raises(ForbiddenException):
        OrderStateMachine.authorize(_order(), Principal(user_id="user-2"))
    OrderStateMachine.authorize(_order(), Principal(user_id="ops", role="super_admin"))


def test_payment_transitions():
    assert set(PaymentStateMachine.allowed_from(PaymentStatus.SUCCEEDED)) == {
        PaymentStatus.PENDING,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }
    assert PaymentStateMachine.allowed_from(PaymentStatus.FAILED) == (PaymentStatus.PENDING,)
    assert PaymentStateMachine.refund_allowed_from(RefundStatus.SUCCEEDED) == (RefundStatus.PENDING,)

    payment = _payment()
    payment.mark_failed("card_declined")
    payment.mark_succeeded()
    assert payment.failure_reason is None
    with pytest.raises(IllegalTransitionException):
        payment.mark_failed()


def test_derive_order_payment_status():
    t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
    failed = _payment(PaymentStatus.FAILED, t0)
    pending = _payment(PaymentStatus.PENDING, t0 + timedelta(minutes=1))
    succeeded = _payment(PaymentStatus.SUCCEEDED, t0 - timedelta(minutes=1))

    assert PaymentStateMachine.derive_order_payment_status([]) == OrderPaymentStatus.UNPAID
    assert PaymentStateMachine.derive_order_payment_status([failed]) == OrderPaymentStatus.FAILED
    assert PaymentStateMachine.derive_order_payment_status([failed, pending]) == OrderPaymentStatus.UNPAID
    assert PaymentStateMachine.derive_order_payment_status([failed, succeeded]) == OrderPaymentStatus.PAID


def test_create_intent_guards():
    with pytest.raises(ConflictException):
        PaymentStateMachine.ensure_can_create_intent(
            _order(status=OrderStatus.CONFIRMED, payment_status=OrderPaymentStatus.PAID)
        )
    with pytest.raises(UnprocessableException):
        PaymentStateMachine.ensure_can_create_intent(_order(status=OrderStatus.CANCELLED))
    PaymentStateMachine.ensure_can_create_intent(_order(payment_status=OrderPaymentStatus.FAILED))


def test_refund_bound():
    payment = _payment(PaymentStatus.SUCCEEDED)
    PaymentStateMachine.ensure_refundable(payment, 6500, 0)
    PaymentStateMachine.ensure_refundable(payment, 500, 6000)
    with pytest.raises(UnprocessableException, match="exceeds refundable amount 500"):
        PaymentStateMachine.ensure_refundable(payment, 501, 6000)
    with pytest.raises(UnprocessableException):
        PaymentStateMachine.ensure_refundable(_payment(PaymentStatus.PENDING), 100, 0)


def test_shipment_lifecycle():
    shipment = Shipment.open("order-1", "rate-1", carrier="Royal Mail")
    with pytest.raises(IllegalTransitionException):
        shipment.transition_to(ShipmentStatus.DELIVERED)
    shipment.transition_to(ShipmentStatus.SHIPPED)
    assert shipment.shipped_at is not None
    shipment.transition_to(ShipmentStatus.DELIVERED)
    assert shipment.delivered_at is not None
    with pytest.raises(IllegalTransitionException):
        shipment.transition_to(ShipmentStatus.CANCELLED)


def test_invoice_number_format():
    assert format_invoice_number("INV", 2026, 1) == "INV-2026-001"
    assert format_invoice_number("INV", 2026, 1234) == "INV-2026-1234"
    assert format_invoice_number("ACME", 2027, 7, width=5) == "ACME-2027-00007"
