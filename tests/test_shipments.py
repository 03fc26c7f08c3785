import pytest

from application.dtos.checkout import CheckoutConfirmRequest
from application.dtos.shipping import ShipmentCreate, ShipmentUpdate
from application.services.checkout_service import CheckoutService
from application.services.shipping_service import ShipmentService
from domain.common.exceptions import ForbiddenException, IllegalTransitionException, UnprocessableException
from domain.shipping.entity import ShipmentStatus

pytestmark = pytest.mark.asyncio


async def _order(uow_factory, gateway, publisher, checkout_request, customer, *, confirm=True):
    checkout = CheckoutService(uow_factory, gateway, publisher)
    started = await checkout.initiate(customer, checkout_request())
    if confirm:
        await checkout.confirm(
            customer,
            CheckoutConfirmRequest(order_id=started.order_id, payment_intent_id=started.payment_intent_id),
        )
    return started.order_id


async def test_shipment_requires_confirmed_order(uow_factory, gateway, publisher, checkout_request, customer, admin):
    order_id = await _order(uow_factory, gateway, publisher, checkout_request, customer, confirm=False)

    with pytest.raises(UnprocessableException):
        await ShipmentService(uow_factory).create(admin, ShipmentCreate(order_id=order_id))


async def test_shipment_lifecycle(uow_factory, gateway, publisher, checkout_request, customer, admin, reference_data):
    order_id = await _order(uow_factory, gateway, publisher, checkout_request, customer)
    service = ShipmentService(uow_factory)

    shipment = await service.create(admin, ShipmentCreate(order_id=order_id, carrier="Royal Mail"))
    assert shipment.status == ShipmentStatus.PENDING
    assert shipment.rate_id == reference_data["shipping_rate_id"]

    with pytest.raises(IllegalTransitionException):
        await service.update(admin, shipment.id, ShipmentUpdate(status=ShipmentStatus.DELIVERED))

    shipped = await service.update(
        admin, shipment.id, ShipmentUpdate(status=ShipmentStatus.SHIPPED, tracking_number="RM123456789GB")
    )
    assert shipped.status == ShipmentStatus.SHIPPED
    assert shipped.tracking_number == "RM123456789GB"
    assert shipped.shipped_at is not None

    delivered = await service.update(admin, shipment.id, ShipmentUpdate(status=ShipmentStatus.DELIVERED))
    assert delivered.delivered_at is not None

    fetched = await service.get(customer, shipment.id)
    assert fetched.status == ShipmentStatus.DELIVERED
    assert [s.id for s in await service.list_by_order(customer, order_id)] == [shipment.id]


async def test_shipment_permissions(uow_factory, gateway, publisher, checkout_request, customer, other_customer, admin):
    order_id = await _order(uow_factory, gateway, publisher, checkout_request, customer)
    service = ShipmentService(uow_factory)

    with pytest.raises(ForbiddenException):
        await service.create(customer, ShipmentCreate(order_id=order_id))
    shipment = await service.create(admin, ShipmentCreate(order_id=order_id))
    with pytest.raises(ForbiddenException):
        await service.get(other_customer, shipment.id)
    with pytest.raises(ForbiddenException):
        await service.update(customer, shipment.id, ShipmentUpdate(status=ShipmentStatus.SHIPPED))
