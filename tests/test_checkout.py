import pytest

from application.dtos.checkout import CheckoutConfirmRequest
from application.dtos.orders import CreateIntentRequest, OrderCreate
from application.dtos.pricing import CouponCreate
from application.services.checkout_service import CheckoutService
from application.services.invoice_service import InvoiceService
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.pricing_service import CouponService
from domain.common.exceptions import (
    ConflictException,
    ForbiddenException,
    IllegalTransitionException,
    UnprocessableException,
)
from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.exceptions import PaymentProviderError

pytestmark = pytest.mark.asyncio


@pytest.fixture
def checkout(uow_factory, gateway, publisher):
    return CheckoutService(uow_factory, gateway, publisher)


@pytest.fixture
def orders(uow_factory, publisher):
    return OrderService(uow_factory, publisher)


async def test_initiate_creates_order_and_pending_payment(checkout, orders, checkout_request, customer, gateway, publisher):
    result = await checkout.initiate(customer, checkout_request())

    assert result.total_amount == 6500
    assert result.currency == "GBP"
    assert result.payment_intent_id == "pi_1"
    assert result.client_secret == "pi_1_secret"

    order = await orders.get(customer, result.order_id)
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == OrderPaymentStatus.UNPAID
    assert [(i.product_id, i.quantity, i.total_price) for i in order.items] == [("widget", 2, 5000)]
    assert len(order.payments) == 1
    assert order.payments[0].status == PaymentStatus.PENDING
    assert order.payments[0].gateway_intent_id == "pi_1"

    sent = gateway.intents[0]
    assert sent.amount == 6500
    assert sent.order_id == result.order_id
    assert sent.idempotency_key

    assert publisher.topics == ["order.created"]
    message = publisher.messages[0][1]
    assert message["eventType"] == "order.created"
    assert message["aggregateId"] == result.order_id
    assert message["data"]["totalAmount"] == 6500


async def test_gateway_failure_rolls_back_order(checkout, orders, checkout_request, customer, gateway, publisher):
    gateway.fail_next = PaymentProviderError("card_declined", provider="stripe")

    with pytest.raises(PaymentProviderError):
        await checkout.initiate(customer, checkout_request())

    listed, total = await orders.list(customer, page=1, size=10)
    assert total == 0 and listed == []
    assert publisher.messages == []


async def test_unexpected_gateway_error_is_unprocessable(checkout, checkout_request, customer, gateway):
    gateway.fail_next = RuntimeError("socket closed")
    with pytest.raises(UnprocessableException, match="Payment gateway error"):
        await checkout.initiate(customer, checkout_request())


async def test_coupon_usage_is_consumed_once_per_order(checkout, checkout_request, customer, uow_factory, admin):
    coupons = CouponService(uow_factory)
    coupon = await coupons.create(admin, CouponCreate(code="ONCE", type="FIXED", value=1000, usage_limit=1))

    first = await checkout.initiate(customer, checkout_request(coupon_code="once"))
    assert first.total_amount == 5500

    with pytest.raises(UnprocessableException, match="usage limit"):
        await checkout.initiate(customer, checkout_request(coupon_code="ONCE"))

    stored = await coupons.get(admin, coupon.id)
    assert stored.usage_count == 1


async def test_summary_does_not_consume_coupon(checkout, checkout_request, uow_factory, admin, reference_data):
    from application.dtos.checkout import CheckoutSummaryRequest

    await checkout.summary(
        CheckoutSummaryRequest(
            items=[{"product_id": "widget", "quantity": 1, "unit_price": 1000}],
            shipping_rate_id=reference_data["shipping_rate_id"],
            country="GB",
            coupon_code="SAVE10",
        )
    )
    coupon = await CouponService(uow_factory).get(admin, reference_data["coupon_id"])
    assert coupon.usage_count == 0


async def test_confirm_settles_order_and_issues_invoice(
    checkout, orders, checkout_request, customer, uow_factory, publisher
):
    started = await checkout.initiate(customer, checkout_request())

    order = await checkout.confirm(
        customer,
        CheckoutConfirmRequest(order_id=started.order_id, payment_intent_id=started.payment_intent_id),
    )

    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_status == OrderPaymentStatus.PAID
    assert order.confirmed_at is not None
    assert publisher.topics == ["order.created", "payment.succeeded", "order.confirmed", "invoice.issued"]

    invoice = await InvoiceService(uow_factory, publisher).get_by_order(customer, started.order_id)
    assert invoice.total_amount == 6500
    assert invoice.invoice_number.startswith("INV-")


async def test_confirm_twice_is_idempotent(checkout, checkout_request, customer, publisher):
    started = await checkout.initiate(customer, checkout_request())
    req = CheckoutConfirmRequest(order_id=started.order_id, payment_intent_id=started.payment_intent_id)

    await checkout.confirm(customer, req)
    published = len(publisher.messages)
    again = await checkout.confirm(customer, req)

    assert again.status == OrderStatus.CONFIRMED
    assert len(publisher.messages) == published


async def test_confirm_rejects_foreign_intent_and_other_users(checkout, checkout_request, customer, other_customer):
    first = await checkout.initiate(customer, checkout_request())
    second = await checkout.initiate(customer, checkout_request())

    with pytest.raises(UnprocessableException):
        await checkout.confirm(
            customer,
            CheckoutConfirmRequest(order_id=first.order_id, payment_intent_id=second.payment_intent_id),
        )
    with pytest.raises(ForbiddenException):
        await checkout.confirm(
            other_customer,
            CheckoutConfirmRequest(order_id=first.order_id, payment_intent_id=first.payment_intent_id),
        )


async def test_confirm_cancelled_order_is_illegal(checkout, orders, checkout_request, customer):
    started = await checkout.initiate(customer, checkout_request())
    cancelled = await orders.cancel(customer, started.order_id, reason="changed my mind")
    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancel_reason == "changed my mind"

    with pytest.raises(IllegalTransitionException):
        await checkout.confirm(
            customer,
            CheckoutConfirmRequest(order_id=started.order_id, payment_intent_id=started.payment_intent_id),
        )

    detail = await orders.get(customer, started.order_id)
    assert detail.payments[0].status == PaymentStatus.CANCELLED


async def test_order_without_intent_then_create_intent(
    orders, checkout_request, customer, uow_factory, gateway, publisher
):
    order = await orders.create(customer, OrderCreate(**checkout_request().model_dump()))
    assert order.status == OrderStatus.PENDING
    assert gateway.intents == []

    payments = PaymentService(uow_factory, gateway)
    intent = await payments.create_intent(customer, CreateIntentRequest(order_id=order.id))
    assert intent.amount == 6500
    assert intent.payment_intent_id == "pi_1"

    listed, total = await payments.list(customer, page=1, size=10)
    assert total == 1 and listed[0].id == intent.payment_id


async def test_create_intent_on_paid_order_conflicts(checkout, checkout_request, customer, uow_factory, gateway):
    started = await checkout.initiate(customer, checkout_request())
    await checkout.confirm(
        customer,
        CheckoutConfirmRequest(order_id=started.order_id, payment_intent_id=started.payment_intent_id),
    )

    with pytest.raises(ConflictException):
        await PaymentService(uow_factory, gateway).create_intent(
            customer, CreateIntentRequest(order_id=started.order_id)
        )


async def test_manual_confirm_needs_succeeded_payment(orders, checkout, checkout_request, customer, admin):
    from application.dtos.orders import OrderStatusUpdate

    started = await checkout.initiate(customer, checkout_request())
    with pytest.raises(ForbiddenException):
        await orders.update_status(customer, started.order_id, OrderStatusUpdate(status=OrderStatus.CONFIRMED))
    with pytest.raises(UnprocessableException, match="no succeeded payment"):
        await orders.update_status(admin, started.order_id, OrderStatusUpdate(status=OrderStatus.CONFIRMED))


async def test_order_listing_is_scoped_to_owner(orders, checkout, checkout_request, customer, other_customer, admin):
    await checkout.initiate(customer, checkout_request())
    await checkout.initiate(other_customer, checkout_request())

    mine, total = await orders.list(customer, page=1, size=10)
    assert total == 1 and mine[0].user_id == customer.user_id

    _, everything = await orders.list(admin, page=1, size=10)
    assert everything == 2

    _, confirmed = await orders.list(admin, page=1, size=10, status=OrderStatus.CONFIRMED)
    assert confirmed == 0
