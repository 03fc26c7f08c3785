"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConflictException
from domain.order.entity import (
    Order,
    OrderItem,
    OrderPaymentStatus,
    OrderStatus,
    ShippingAddress,
)
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderItemModel, OrderModel


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现（已软删除的订单对所有查询不可见）"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            user_id=model.user_id,
            status=OrderStatus(model.status),
            payment_status=OrderPaymentStatus(model.payment_status),
            subtotal=model.subtotal,
            tax_amount=model.tax_amount,
            shipping_amount=model.shipping_amount,
            discount_amount=model.discount_amount,
            total_amount=model.total_amount,
            currency=model.currency,
            shipping_address=ShippingAddress.from_dict(model.shipping_address or {}),
            items=[
                OrderItem(
                    id=item.id,
                    order_id=item.order_id,
                    product_id=item.product_id,
                    name=item.name,
                    category=item.category,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
                for item in model.items
            ],
            shipping_rate_id=model.shipping_rate_id,
            coupon_id=model.coupon_id,
            coupon_code=model.coupon_code,
            cancel_reason=model.cancel_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
            confirmed_at=model.confirmed_at,
            cancelled_at=model.cancelled_at,
            deleted_at=model.deleted_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        return OrderModel(
            id=entity.id,
            user_id=entity.user_id,
            status=entity.status.value,
            payment_status=entity.payment_status.value,
            subtotal=entity.subtotal,
            tax_amount=entity.tax_amount,
            shipping_amount=entity.shipping_amount,
            discount_amount=entity.discount_amount,
            total_amount=entity.total_amount,
            currency=entity.currency,
            shipping_address=entity.shipping_address.to_dict(),
            shipping_rate_id=entity.shipping_rate_id,
            coupon_id=entity.coupon_id,
            coupon_code=entity.coupon_code,
            cancel_reason=entity.cancel_reason,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            confirmed_at=entity.confirmed_at,
            cancelled_at=entity.cancelled_at,
            items=[
                OrderItemModel(
                    id=item.id,
                    order_id=entity.id,
                    position=position,
                    product_id=item.product_id,
                    name=item.name,
                    category=item.category,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                for position, item in enumerate(entity.items)
            ],
        )

    def _visible(self):
        return select(OrderModel).where(OrderModel.deleted_at.is_(None))

    async def create(self, order: Order) -> Order:
        """创建订单及订单项"""
        try:
            db_order = self._to_model(order)
            self.session.add(db_order)
            await self.session.flush()
        except IntegrityError:
            logger.warning("order_create_conflict", order_id=order.id)
            raise ConflictException("Order already exists", context={"order_id": order.id})
        logger.info(
            "order_created",
            order_id=order.id,
            user_id=order.user_id,
            total_amount=order.total_amount,
            currency=order.currency,
        )
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单（总是读取数据库最新值）"""
        result = await self.session.execute(
            self._visible()
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    def _filtered(self, query, user_id: Optional[str], status: Optional[OrderStatus]):
        if user_id is not None:
            query = query.where(OrderModel.user_id == user_id)
        if status is not None:
            query = query.where(OrderModel.status == status.value)
        return query

    async def list(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Order]:
        query = self._filtered(self._visible(), user_id, status)
        # 按创建时间倒序，再按ID倒序，确保分页稳定
        query = query.order_by(OrderModel.created_at.desc(), OrderModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> int:
        query = select(func.count(OrderModel.id)).where(OrderModel.deleted_at.is_(None))
        query = self._filtered(query, user_id, status)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def list_stale_pending(self, older_than: datetime, limit: int) -> List[Order]:
        result = await self.session.execute(
            self._visible()
            .where(
                OrderModel.status == OrderStatus.PENDING.value,
                OrderModel.created_at < older_than,
            )
            .order_by(OrderModel.created_at.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def transition_status(
        self,
        order_id: str,
        *,
        expected: Iterable[OrderStatus],
        target: OrderStatus,
        payment_status: Optional[OrderPaymentStatus] = None,
        cancel_reason: Optional[str] = None,
    ) -> bool:
        now = datetime.now(timezone.utc)
        values = {"status": target.value, "updated_at": now}
        if payment_status is not None:
            values["payment_status"] = payment_status.value
        if target == OrderStatus.CONFIRMED:
            values["confirmed_at"] = now
        elif target == OrderStatus.CANCELLED:
            values["cancelled_at"] = now
            values["cancel_reason"] = cancel_reason

        result = await self.session.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.deleted_at.is_(None),
                OrderModel.status.in_([s.value for s in expected]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        logger.info(
            "order_transition",
            order_id=order_id,
            target=target.value,
            applied=applied,
        )
        return applied

    async def set_payment_status(
        self,
        order_id: str,
        *,
        target: OrderPaymentStatus,
        unless: Iterable[OrderPaymentStatus] = (),
    ) -> bool:
        query = update(OrderModel).where(OrderModel.id == order_id, OrderModel.deleted_at.is_(None))
        skip_values = [s.value for s in unless]
        if skip_values:
            query = query.where(OrderModel.payment_status.not_in(skip_values))
        result = await self.session.execute(
            query.values(payment_status=target.value, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
