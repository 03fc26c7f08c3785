from datetime import datetime, timedelta, timezone

import pytest

from application.dtos.checkout import CheckoutConfirmRequest
from application.services.checkout_service import CheckoutService
from application.services.order_service import ABANDONED_REASON, OrderService
from domain.order.entity import OrderStatus
from domain.payment.entity import PaymentStatus
from infrastructure.tasks.tasks.orders import close_abandoned

pytestmark = pytest.mark.asyncio


def _later(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


async def test_recent_orders_are_left_alone(uow_factory, gateway, publisher, checkout_request, customer):
    await CheckoutService(uow_factory, gateway, publisher).initiate(customer, checkout_request())

    stats = await OrderService(uow_factory, publisher).close_abandoned_checkouts(now=_later(5))

    assert stats == {"processed": 0, "closed": 0, "skipped": 0, "errors": 0}


async def test_stale_pending_orders_are_closed(uow_factory, gateway, publisher, checkout_request, customer):
    checkout = CheckoutService(uow_factory, gateway, publisher)
    orders = OrderService(uow_factory, publisher)
    stale = await checkout.initiate(customer, checkout_request())
    paid = await checkout.initiate(customer, checkout_request())
    await checkout.confirm(
        customer,
        CheckoutConfirmRequest(order_id=paid.order_id, payment_intent_id=paid.payment_intent_id),
    )
    publisher.messages.clear()

    stats = await orders.close_abandoned_checkouts(now=_later(31))

    assert stats == {"processed": 1, "closed": 1, "skipped": 0, "errors": 0}
    order = await orders.get(customer, stale.order_id)
    assert order.status == OrderStatus.CANCELLED
    assert order.cancel_reason == ABANDONED_REASON
    assert order.payments[0].status == PaymentStatus.CANCELLED
    assert (await orders.get(customer, paid.order_id)).status == OrderStatus.CONFIRMED

    assert publisher.topics == ["order.abandoned"]
    assert publisher.messages[0][1]["aggregateId"] == stale.order_id


async def test_job_entrypoint_is_repeatable(database, uow_factory, gateway, publisher, checkout_request, customer):
    await CheckoutService(uow_factory, gateway, publisher).initiate(customer, checkout_request())

    first = await close_abandoned(database, publisher, now=_later(60))
    second = await close_abandoned(database, publisher, now=_later(60))

    assert first["closed"] == 1
    assert second == {"processed": 0, "closed": 0, "skipped": 0, "errors": 0}


async def test_order_paid_after_listing_is_skipped(uow_factory, gateway, publisher, checkout_request, customer, monkeypatch):
    checkout = CheckoutService(uow_factory, gateway, publisher)
    orders = OrderService(uow_factory, publisher)
    started = await checkout.initiate(customer, checkout_request())

    from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository

    now = _later(31)
    async with uow_factory(readonly=True) as uow:
        snapshot = await uow.orders.list_stale_pending(now - timedelta(minutes=30), 100)
    assert [o.id for o in snapshot] == [started.order_id]

    # 列表之后、关单之前支付成功
    await checkout.confirm(
        customer,
        CheckoutConfirmRequest(order_id=started.order_id, payment_intent_id=started.payment_intent_id),
    )

    async def frozen_listing(self, older_than, limit):
        return snapshot

    monkeypatch.setattr(SQLAlchemyOrderRepository, "list_stale_pending", frozen_listing)

    stats = await orders.close_abandoned_checkouts(now=now)

    assert stats == {"processed": 1, "closed": 0, "skipped": 1, "errors": 0}
    assert (await orders.get(customer, started.order_id)).status == OrderStatus.CONFIRMED
