"""发货记录仓储实现"""
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.shipping.entity import Shipment, ShipmentStatus
from domain.shipping.repository import ShipmentRepository
from infrastructure.models.shipment import ShipmentModel


logger = get_logger(__name__)


class SQLAlchemyShipmentRepository(ShipmentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ShipmentModel) -> Shipment:
        return Shipment(
            id=model.id,
            order_id=model.order_id,
            rate_id=model.rate_id,
            status=ShipmentStatus(model.status),
            carrier=model.carrier,
            tracking_number=model.tracking_number,
            estimated_delivery=model.estimated_delivery,
            shipped_at=model.shipped_at,
            delivered_at=model.delivered_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, shipment: Shipment) -> Shipment:
        db_shipment = ShipmentModel(
            id=shipment.id,
            order_id=shipment.order_id,
            rate_id=shipment.rate_id,
            status=shipment.status.value,
            carrier=shipment.carrier,
            tracking_number=shipment.tracking_number,
            estimated_delivery=shipment.estimated_delivery,
            shipped_at=shipment.shipped_at,
            delivered_at=shipment.delivered_at,
            created_at=shipment.created_at,
            updated_at=shipment.updated_at,
        )
        self.session.add(db_shipment)
        await self.session.flush()
        logger.info("shipment_created", shipment_id=shipment.id, order_id=shipment.order_id)
        return self._to_entity(db_shipment)

    async def get_by_id(self, shipment_id: str) -> Optional[Shipment]:
        result = await self.session.execute(
            select(ShipmentModel)
            .where(ShipmentModel.id == shipment_id)
            .execution_options(populate_existing=True)
        )
        db_shipment = result.scalar_one_or_none()
        return self._to_entity(db_shipment) if db_shipment else None

    async def list_by_order(self, order_id: str) -> List[Shipment]:
        result = await self.session.execute(
            select(ShipmentModel)
            .where(ShipmentModel.order_id == order_id)
            .order_by(ShipmentModel.created_at.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, shipment: Shipment, *, expected: Iterable[ShipmentStatus]) -> bool:
        result = await self.session.execute(
            update(ShipmentModel)
            .where(
                ShipmentModel.id == shipment.id,
                ShipmentModel.status.in_([s.value for s in expected]),
            )
            .values(
                status=shipment.status.value,
                carrier=shipment.carrier,
                tracking_number=shipment.tracking_number,
                estimated_delivery=shipment.estimated_delivery,
                shipped_at=shipment.shipped_at,
                delivered_at=shipment.delivered_at,
                updated_at=shipment.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        logger.info(
            "shipment_updated",
            shipment_id=shipment.id,
            status=shipment.status.value,
            applied=applied,
        )
        return applied
