"""Shipment tracking for confirmed orders."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from application.dtos.shipping import ShipmentCreate, ShipmentOut, ShipmentUpdate
from core.logging_config import get_logger
from domain.common.exceptions import ConflictException, NotFoundException, UnprocessableException
from domain.common.principal import Principal
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus
from domain.shipping.entity import Shipment


logger = get_logger(__name__)


class ShipmentService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def create(self, principal: Principal, data: ShipmentCreate) -> ShipmentOut:
        principal.ensure_admin()
        async with self._uow_factory() as uow:
            order = await uow.orders.get_by_id(data.order_id)
            if order is None:
                raise NotFoundException("Order", data.order_id)
            if order.status != OrderStatus.CONFIRMED:
                raise UnprocessableException(
                    "Shipments can only be created for confirmed orders",
                    field="orderId",
                    context={"order_id": order.id, "status": order.status.value},
                )
            shipment = Shipment.open(
                order.id,
                data.rate_id or order.shipping_rate_id,
                carrier=data.carrier,
                tracking_number=data.tracking_number,
                estimated_delivery=data.estimated_delivery,
            )
            shipment = await uow.shipments.create(shipment)
        logger.info("shipment_created", shipment_id=shipment.id, order_id=shipment.order_id)
        return ShipmentOut.model_validate(shipment)

    async def get(self, principal: Principal, shipment_id: str) -> ShipmentOut:
        async with self._uow_factory(readonly=True) as uow:
            shipment = await uow.shipments.get_by_id(shipment_id)
            if shipment is None:
                raise NotFoundException("Shipment", shipment_id)
            order = await uow.orders.get_by_id(shipment.order_id)
        if order is None:
            raise NotFoundException("Order", shipment.order_id)
        principal.ensure_owner_or_admin(order.user_id)
        return ShipmentOut.model_validate(shipment)

    async def update(self, principal: Principal, shipment_id: str, data: ShipmentUpdate) -> ShipmentOut:
        principal.ensure_admin()
        changes = data.model_dump(exclude_unset=True, exclude={"status"})
        async with self._uow_factory() as uow:
            shipment = await uow.shipments.get_by_id(shipment_id)
            if shipment is None:
                raise NotFoundException("Shipment", shipment_id)
            previous = shipment.status
            shipment.updated_at = datetime.now(timezone.utc)
            for name, value in changes.items():
                setattr(shipment, name, value)
            if data.status is not None:
                shipment.transition_to(data.status)
            if not await uow.shipments.update(shipment, expected=(previous,)):
                raise ConflictException(
                    "Shipment was modified concurrently",
                    context={"shipment_id": shipment_id},
                )
        return ShipmentOut.model_validate(shipment)

    async def list_by_order(self, principal: Principal, order_id: str) -> list[ShipmentOut]:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
            if order is None:
                raise NotFoundException("Order", order_id)
            principal.ensure_owner_or_admin(order.user_id)
            shipments = await uow.shipments.list_by_order(order_id)
        return [ShipmentOut.model_validate(s) for s in shipments]
