"""
定价参考数据仓储实现：优惠券、税率规则、运费规则
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConflictException, NotFoundException
from domain.pricing.entity import (
    Coupon,
    CouponStatus,
    CouponType,
    ShippingRate,
    TaxRule,
    TaxType,
)
from domain.pricing.repository import (
    CouponRepository,
    ShippingRateRepository,
    TaxRuleRepository,
)
from infrastructure.models.pricing import CouponModel, ShippingRateModel, TaxRuleModel


logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLAlchemyCouponRepository(CouponRepository):
    """优惠券仓储；优惠码在未删除记录中唯一"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CouponModel) -> Coupon:
        return Coupon(
            id=model.id,
            code=model.code,
            type=CouponType(model.type),
            value=model.value,
            status=CouponStatus(model.status),
            min_order_amount=model.min_order_amount,
            max_discount_amount=model.max_discount_amount,
            usage_limit=model.usage_limit,
            usage_count=model.usage_count,
            expires_at=model.expires_at,
            description=model.description,
            created_at=model.created_at,
            updated_at=model.updated_at,
            deleted_at=model.deleted_at,
        )

    def _apply(self, model: CouponModel, entity: Coupon) -> CouponModel:
        model.code = entity.code
        model.type = entity.type.value
        model.value = entity.value
        model.status = entity.status.value
        model.min_order_amount = entity.min_order_amount
        model.max_discount_amount = entity.max_discount_amount
        model.usage_limit = entity.usage_limit
        model.usage_count = entity.usage_count
        model.expires_at = entity.expires_at
        model.description = entity.description
        return model

    async def _get_model(self, coupon_id: str) -> Optional[CouponModel]:
        result = await self.session.execute(
            select(CouponModel)
            .where(CouponModel.id == coupon_id, CouponModel.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _ensure_code_free(self, code: str, exclude_id: Optional[str] = None) -> None:
        query = select(func.count(CouponModel.id)).where(
            CouponModel.code == code,
            CouponModel.deleted_at.is_(None),
        )
        if exclude_id is not None:
            query = query.where(CouponModel.id != exclude_id)
        result = await self.session.execute(query)
        if result.scalar_one() > 0:
            logger.warning("coupon_code_conflict", code=code)
            raise ConflictException(f"Coupon code {code} already exists", field="code", context={"code": code})

    async def create(self, coupon: Coupon) -> Coupon:
        await self._ensure_code_free(coupon.code)
        now = _utcnow()
        db_coupon = self._apply(
            CouponModel(id=coupon.id, created_at=coupon.created_at or now, updated_at=now),
            coupon,
        )
        self.session.add(db_coupon)
        await self.session.flush()
        logger.info("coupon_created", coupon_id=coupon.id, code=coupon.code)
        return self._to_entity(db_coupon)

    async def update(self, coupon: Coupon) -> Coupon:
        db_coupon = await self._get_model(coupon.id)
        if db_coupon is None:
            raise NotFoundException("Coupon", coupon.id)
        if db_coupon.code != coupon.code:
            await self._ensure_code_free(coupon.code, exclude_id=coupon.id)
        self._apply(db_coupon, coupon)
        db_coupon.updated_at = _utcnow()
        await self.session.flush()
        return self._to_entity(db_coupon)

    async def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        db_coupon = await self._get_model(coupon_id)
        return self._to_entity(db_coupon) if db_coupon else None

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.session.execute(
            select(CouponModel)
            .where(CouponModel.code == code.strip().upper(), CouponModel.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
        db_coupon = result.scalar_one_or_none()
        return self._to_entity(db_coupon) if db_coupon else None

    async def list(self, *, skip: int = 0, limit: int = 20) -> List[Coupon]:
        result = await self.session.execute(
            select(CouponModel)
            .where(CouponModel.deleted_at.is_(None))
            .order_by(CouponModel.created_at.desc(), CouponModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(self) -> int:
        result = await self.session.execute(
            select(func.count(CouponModel.id)).where(CouponModel.deleted_at.is_(None))
        )
        return result.scalar_one()

    async def soft_delete(self, coupon_id: str) -> bool:
        now = _utcnow()
        result = await self.session.execute(
            update(CouponModel)
            .where(CouponModel.id == coupon_id, CouponModel.deleted_at.is_(None))
            .values(deleted_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def increment_usage(self, coupon_id: str) -> bool:
        query = update(CouponModel).where(
            CouponModel.id == coupon_id,
            CouponModel.deleted_at.is_(None),
            (CouponModel.usage_limit.is_(None)) | (CouponModel.usage_count < CouponModel.usage_limit),
        )
        result = await self.session.execute(
            query.values(usage_count=CouponModel.usage_count + 1, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class SQLAlchemyTaxRuleRepository(TaxRuleRepository):
    """税率规则仓储"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TaxRuleModel) -> TaxRule:
        return TaxRule(
            id=model.id,
            name=model.name,
            type=TaxType(model.type),
            rate=Decimal(str(model.rate)),
            country=model.country,
            region=model.region,
            category=model.category,
            is_default=model.is_default,
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
            deleted_at=model.deleted_at,
        )

    def _apply(self, model: TaxRuleModel, entity: TaxRule) -> TaxRuleModel:
        model.name = entity.name
        model.type = entity.type.value
        model.rate = entity.rate
        model.country = entity.country
        model.region = entity.region
        model.category = entity.category
        model.is_default = entity.is_default
        model.is_active = entity.is_active
        return model

    async def _get_model(self, rule_id: str) -> Optional[TaxRuleModel]:
        result = await self.session.execute(
            select(TaxRuleModel)
            .where(TaxRuleModel.id == rule_id, TaxRuleModel.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, rule: TaxRule) -> TaxRule:
        now = _utcnow()
        db_rule = self._apply(TaxRuleModel(id=rule.id, created_at=rule.created_at or now, updated_at=now), rule)
        self.session.add(db_rule)
        await self.session.flush()
        logger.info("tax_rule_created", rule_id=rule.id, country=rule.country, category=rule.category)
        return self._to_entity(db_rule)

    async def update(self, rule: TaxRule) -> TaxRule:
        db_rule = await self._get_model(rule.id)
        if db_rule is None:
            raise NotFoundException("Tax rule", rule.id)
        self._apply(db_rule, rule)
        db_rule.updated_at = _utcnow()
        await self.session.flush()
        return self._to_entity(db_rule)

    async def get_by_id(self, rule_id: str) -> Optional[TaxRule]:
        db_rule = await self._get_model(rule_id)
        return self._to_entity(db_rule) if db_rule else None

    def _filtered(self, query, country: Optional[str], is_active: Optional[bool]):
        query = query.where(TaxRuleModel.deleted_at.is_(None))
        if country:
            query = query.where(TaxRuleModel.country == country.strip().upper())
        if is_active is not None:
            query = query.where(TaxRuleModel.is_active == is_active)
        return query

    async def list(
        self,
        *,
        country: Optional[str] = None,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[TaxRule]:
        query = self._filtered(select(TaxRuleModel), country, is_active)
        query = query.order_by(TaxRuleModel.country.asc(), TaxRuleModel.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(self, *, country: Optional[str] = None, is_active: Optional[bool] = None) -> int:
        query = self._filtered(select(func.count(TaxRuleModel.id)), country, is_active)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def find_active(self, country: str, category: str) -> List[TaxRule]:
        result = await self.session.execute(
            select(TaxRuleModel)
            .where(
                TaxRuleModel.deleted_at.is_(None),
                TaxRuleModel.is_active.is_(True),
                TaxRuleModel.country == country.strip().upper(),
                TaxRuleModel.category == category.strip().upper(),
            )
            .order_by(TaxRuleModel.created_at.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def soft_delete(self, rule_id: str) -> bool:
        now = _utcnow()
        result = await self.session.execute(
            update(TaxRuleModel)
            .where(TaxRuleModel.id == rule_id, TaxRuleModel.deleted_at.is_(None))
            .values(deleted_at=now, updated_at=now, is_active=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class SQLAlchemyShippingRateRepository(ShippingRateRepository):
    """运费规则仓储"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ShippingRateModel) -> ShippingRate:
        return ShippingRate(
            id=model.id,
            name=model.name,
            method=model.method,
            price=model.price,
            countries=list(model.countries or []),
            free_threshold=model.free_threshold,
            estimated_days=model.estimated_days,
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
            deleted_at=model.deleted_at,
        )

    def _apply(self, model: ShippingRateModel, entity: ShippingRate) -> ShippingRateModel:
        model.name = entity.name
        model.method = entity.method
        model.price = entity.price
        model.countries = list(entity.countries)
        model.free_threshold = entity.free_threshold
        model.estimated_days = entity.estimated_days
        model.is_active = entity.is_active
        return model

    async def create(self, rate: ShippingRate) -> ShippingRate:
        now = _utcnow()
        db_rate = self._apply(ShippingRateModel(id=rate.id, created_at=rate.created_at or now, updated_at=now), rate)
        self.session.add(db_rate)
        await self.session.flush()
        logger.info("shipping_rate_created", rate_id=rate.id, method=rate.method)
        return self._to_entity(db_rate)

    async def update(self, rate: ShippingRate) -> ShippingRate:
        result = await self.session.execute(
            select(ShippingRateModel).where(
                ShippingRateModel.id == rate.id,
                ShippingRateModel.deleted_at.is_(None),
            )
        )
        db_rate = result.scalar_one_or_none()
        if db_rate is None:
            raise NotFoundException("Shipping rate", rate.id)
        self._apply(db_rate, rate)
        db_rate.updated_at = _utcnow()
        await self.session.flush()
        return self._to_entity(db_rate)

    async def get_by_id(self, rate_id: str) -> Optional[ShippingRate]:
        result = await self.session.execute(
            select(ShippingRateModel)
            .where(ShippingRateModel.id == rate_id, ShippingRateModel.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
        db_rate = result.scalar_one_or_none()
        return self._to_entity(db_rate) if db_rate else None

    async def list_active(self) -> List[ShippingRate]:
        result = await self.session.execute(
            select(ShippingRateModel)
            .where(ShippingRateModel.deleted_at.is_(None), ShippingRateModel.is_active.is_(True))
            .order_by(ShippingRateModel.price.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]
