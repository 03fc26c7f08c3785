"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConflictException
from domain.payment.entity import Payment, PaymentStatus, Refund, RefundStatus
from domain.payment.repository import PaymentRepository, RefundRepository
from infrastructure.models.order import OrderModel
from infrastructure.models.payment import PaymentModel, RefundModel


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            order_id=model.order_id,
            gateway_intent_id=model.gateway_intent_id,
            amount=model.amount,
            currency=model.currency,
            status=PaymentStatus(model.status),
            method=model.method,
            provider=model.provider,
            client_secret=model.client_secret,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
            paid_at=model.paid_at,
            failed_at=model.failed_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            id=entity.id,
            order_id=entity.order_id,
            gateway_intent_id=entity.gateway_intent_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            method=entity.method,
            provider=entity.provider,
            client_secret=entity.client_secret,
            failure_reason=entity.failure_reason,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            paid_at=entity.paid_at,
            failed_at=entity.failed_at,
        )

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        try:
            db_payment = self._to_model(payment)
            self.session.add(db_payment)
            await self.session.flush()
        except IntegrityError:
            logger.warning(
                "payment_create_conflict",
                order_id=payment.order_id,
                gateway_intent_id=payment.gateway_intent_id,
            )
            raise ConflictException(
                "Payment intent is already recorded",
                context={"gateway_intent_id": payment.gateway_intent_id},
            )
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            provider=db_payment.provider,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据ID获取支付"""
        query = select(PaymentModel).where(PaymentModel.id == payment_id)
        if for_update:
            # 退款额度校验需要串行化同一支付上的并发退款
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_intent_id(self, gateway_intent_id: str) -> Optional[Payment]:
        """根据网关 PaymentIntent ID 获取支付"""
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.gateway_intent_id == gateway_intent_id)
            .execution_options(populate_existing=True)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def list_by_order(self, order_id: str) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.order_id == order_id)
            .order_by(PaymentModel.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    def _filtered(self, query, status: Optional[PaymentStatus], user_id: Optional[str]):
        if status is not None:
            query = query.where(PaymentModel.status == status.value)
        if user_id is not None:
            query = query.join(OrderModel, OrderModel.id == PaymentModel.order_id).where(
                OrderModel.user_id == user_id
            )
        return query

    async def list(
        self,
        *,
        status: Optional[PaymentStatus] = None,
        user_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Payment]:
        query = self._filtered(select(PaymentModel), status, user_id)
        query = query.order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()]

    async def count(self, *, status: Optional[PaymentStatus] = None, user_id: Optional[str] = None) -> int:
        query = self._filtered(select(func.count(PaymentModel.id)), status, user_id)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def transition_status(
        self,
        payment_id: str,
        *,
        expected: Iterable[PaymentStatus],
        target: PaymentStatus,
        failure_reason: Optional[str] = None,
    ) -> bool:
        now = datetime.now(timezone.utc)
        values = {"status": target.value, "updated_at": now}
        if target == PaymentStatus.SUCCEEDED:
            values["paid_at"] = now
            values["failure_reason"] = None
        elif target == PaymentStatus.FAILED:
            values["failed_at"] = now
            values["failure_reason"] = failure_reason

        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.id == payment_id,
                PaymentModel.status.in_([s.value for s in expected]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        logger.info(
            "payment_transition",
            payment_id=payment_id,
            target=target.value,
            applied=applied,
        )
        return applied

    async def cancel_pending_for_order(self, order_id: str) -> int:
        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.order_id == order_id,
                PaymentModel.status == PaymentStatus.PENDING.value,
            )
            .values(status=PaymentStatus.CANCELLED.value, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class SQLAlchemyRefundRepository(RefundRepository):
    """退款仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundModel) -> Refund:
        """将数据库模型转换为领域实体"""
        return Refund(
            id=model.id,
            payment_id=model.payment_id,
            order_id=model.order_id,
            gateway_refund_id=model.gateway_refund_id,
            amount=model.amount,
            currency=model.currency,
            status=RefundStatus(model.status),
            reason=model.reason,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
            succeeded_at=model.succeeded_at,
        )

    def _to_model(self, entity: Refund) -> RefundModel:
        return RefundModel(
            id=entity.id,
            payment_id=entity.payment_id,
            order_id=entity.order_id,
            gateway_refund_id=entity.gateway_refund_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            reason=entity.reason,
            failure_reason=entity.failure_reason,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            succeeded_at=entity.succeeded_at,
        )

    async def create(self, refund: Refund) -> Refund:
        try:
            db_refund = self._to_model(refund)
            self.session.add(db_refund)
            await self.session.flush()
        except IntegrityError:
            logger.warning(
                "refund_create_conflict",
                payment_id=refund.payment_id,
                gateway_refund_id=refund.gateway_refund_id,
            )
            raise ConflictException(
                "Refund is already recorded",
                context={"gateway_refund_id": refund.gateway_refund_id},
            )
        logger.info(
            "refund_created",
            refund_id=db_refund.id,
            payment_id=db_refund.payment_id,
            amount=db_refund.amount,
            status=db_refund.status,
        )
        return self._to_entity(db_refund)

    async def get_by_id(self, refund_id: str) -> Optional[Refund]:
        result = await self.session.execute(
            select(RefundModel)
            .where(RefundModel.id == refund_id)
            .execution_options(populate_existing=True)
        )
        db_refund = result.scalar_one_or_none()
        return self._to_entity(db_refund) if db_refund else None

    async def get_by_gateway_refund_id(self, gateway_refund_id: str) -> Optional[Refund]:
        result = await self.session.execute(
            select(RefundModel)
            .where(RefundModel.gateway_refund_id == gateway_refund_id)
            .execution_options(populate_existing=True)
        )
        db_refund = result.scalar_one_or_none()
        return self._to_entity(db_refund) if db_refund else None

    async def list_by_payment(self, payment_id: str) -> List[Refund]:
        result = await self.session.execute(
            select(RefundModel)
            .where(RefundModel.payment_id == payment_id)
            .order_by(RefundModel.created_at.asc())
        )
        return [self._to_entity(r) for r in result.scalars().all()]

    async def list(self, *, status: Optional[RefundStatus] = None, skip: int = 0, limit: int = 20) -> List[Refund]:
        query = select(RefundModel)
        if status is not None:
            query = query.where(RefundModel.status == status.value)
        query = query.order_by(RefundModel.created_at.desc(), RefundModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(r) for r in result.scalars().all()]

    async def count(self, *, status: Optional[RefundStatus] = None) -> int:
        query = select(func.count(RefundModel.id))
        if status is not None:
            query = query.where(RefundModel.status == status.value)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def committed_amount(self, payment_id: str) -> int:
        """SUCCEEDED + PENDING 退款总额"""
        result = await self.session.execute(
            select(func.coalesce(func.sum(RefundModel.amount), 0)).where(
                RefundModel.payment_id == payment_id,
                RefundModel.status.in_([RefundStatus.SUCCEEDED.value, RefundStatus.PENDING.value]),
            )
        )
        return int(result.scalar_one())

    async def transition_status(
        self,
        refund_id: str,
        *,
        expected: Iterable[RefundStatus],
        target: RefundStatus,
        failure_reason: Optional[str] = None,
    ) -> bool:
        now = datetime.now(timezone.utc)
        values = {"status": target.value, "updated_at": now}
        if target == RefundStatus.SUCCEEDED:
            values["succeeded_at"] = now
        elif target == RefundStatus.FAILED:
            values["failure_reason"] = failure_reason
        result = await self.session.execute(
            update(RefundModel)
            .where(
                RefundModel.id == refund_id,
                RefundModel.status.in_([s.value for s in expected]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        logger.info("refund_transition", refund_id=refund_id, target=target.value, applied=applied)
        return applied
