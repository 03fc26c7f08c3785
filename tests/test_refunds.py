import pytest
import pytest_asyncio

from application.dtos.orders import RefundCreateRequest
from application.services.checkout_service import CheckoutService
from application.services.order_service import OrderService
from application.services.refund_service import RefundService
from application.services.webhook_service import WebhookService
from domain.common.exceptions import ForbiddenException, NotFoundException, UnprocessableException
from domain.payment.entity import RefundStatus
from fakes import VALID_SIGNATURE, stripe_event
from infrastructure.external.payments.exceptions import PaymentRecoverableError

pytestmark = pytest.mark.asyncio


@pytest.fixture
def refunds(uow_factory, gateway, publisher):
    return RefundService(uow_factory, gateway, publisher)


async def _initiate(uow_factory, gateway, publisher, checkout_request, customer):
    started = await CheckoutService(uow_factory, gateway, publisher).initiate(customer, checkout_request())
    order = await OrderService(uow_factory, publisher).get(customer, started.order_id)
    return started, order.payments[0].id


@pytest_asyncio.fixture
async def paid(uow_factory, gateway, publisher, checkout_request, customer):
    started, payment_id = await _initiate(uow_factory, gateway, publisher, checkout_request, customer)
    await WebhookService(uow_factory, gateway, publisher).handle(
        stripe_event("payment_intent.succeeded", {"id": started.payment_intent_id}),
        VALID_SIGNATURE,
    )
    publisher.messages.clear()
    return payment_id


async def test_only_admins_can_refund(refunds, paid, customer):
    with pytest.raises(ForbiddenException):
        await refunds.create(customer, RefundCreateRequest(payment_id=paid, amount=100))


async def test_refund_request_goes_to_gateway(refunds, paid, admin, gateway, publisher):
    refund = await refunds.create(admin, RefundCreateRequest(payment_id=paid, amount=1500, reason="late delivery"))

    assert refund.status == RefundStatus.PENDING
    assert refund.amount == 1500
    assert refund.currency == "GBP"
    assert refund.gateway_refund_id == "re_2"
    sent = gateway.refunds[0]
    assert sent.payment_intent_id == "pi_1"
    assert sent.amount == 1500
    assert sent.reason == "late delivery"
    assert sent.idempotency_key
    assert publisher.topics == ["refund.created"]


async def test_pending_refunds_count_against_bound(refunds, paid, admin):
    await refunds.create(admin, RefundCreateRequest(payment_id=paid, amount=4000))
    await refunds.create(admin, RefundCreateRequest(payment_id=paid, amount=2500))

    with pytest.raises(UnprocessableException, match="exceeds refundable amount 0"):
        await refunds.create(admin, RefundCreateRequest(payment_id=paid, amount=1))


async def test_unpaid_payment_cannot_be_refunded(refunds, uow_factory, gateway, publisher, checkout_request, customer, admin):
    _, payment_id = await _initiate(uow_factory, gateway, publisher, checkout_request, customer)

    with pytest.raises(UnprocessableException, match="Only succeeded payments"):
        await refunds.create(admin, RefundCreateRequest(payment_id=payment_id, amount=100))
    with pytest.raises(NotFoundException):
        await refunds.create(admin, RefundCreateRequest(payment_id="missing", amount=100))


async def test_gateway_failure_leaves_no_refund(refunds, paid, admin, gateway, publisher):
    gateway.fail_next = PaymentRecoverableError("timed out", provider="stripe")

    with pytest.raises(PaymentRecoverableError):
        await refunds.create(admin, RefundCreateRequest(payment_id=paid, amount=1000))

    listed, total = await refunds.list(admin, page=1, size=10)
    assert total == 0 and listed == []
    assert publisher.messages == []


async def test_refund_visibility(refunds, paid, admin, customer, other_customer):
    refund = await refunds.create(admin, RefundCreateRequest(payment_id=paid, amount=1000))

    assert (await refunds.get(customer, refund.id)).id == refund.id
    assert [r.id for r in await refunds.list_by_payment(customer, paid)] == [refund.id]
    with pytest.raises(ForbiddenException):
        await refunds.get(other_customer, refund.id)
    with pytest.raises(ForbiddenException):
        await refunds.list(customer, page=1, size=10)

    listed, total = await refunds.list(admin, page=1, size=10, status=RefundStatus.PENDING)
    assert total == 1 and listed[0].id == refund.id
