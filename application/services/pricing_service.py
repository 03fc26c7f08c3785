"""
定价应用服务 - 优惠券 / 税率规则 / 运费规则的管理与计算

管理操作只允许管理员；税费计算与运费查询对所有已认证用户开放。
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional
import uuid

from application.dtos.pricing import (
    CouponCreate,
    CouponOut,
    CouponUpdate,
    ShippingRateCreate,
    ShippingRateOut,
    ShippingRateUpdate,
    TaxCalculateRequest,
    TaxCalculateResponse,
    TaxRuleCreate,
    TaxRuleOut,
    TaxRuleUpdate,
    check_coupon_value,
    check_tax_rate,
)
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import NotFoundException, ValidationException
from domain.common.principal import Principal
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.pricing.engine import PricingEngine
from domain.pricing.entity import Coupon, ShippingRate, TaxRule
from domain.pricing.resolvers import CouponValidator, ShippingRateResolver, TaxResolver


logger = get_logger(__name__)


def build_pricing_engine(uow: AbstractUnitOfWork) -> PricingEngine:
    """在当前事务内组装定价引擎"""
    return PricingEngine(
        TaxResolver(uow.tax_rules),
        ShippingRateResolver(uow.shipping_rates),
        CouponValidator(uow.coupons),
    )


def _apply_changes(entity, changes: dict) -> None:
    for name, value in changes.items():
        setattr(entity, name, value)
    entity.updated_at = datetime.now(timezone.utc)


class CouponService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def create(self, principal: Principal, data: CouponCreate) -> CouponOut:
        principal.ensure_admin()
        now = datetime.now(timezone.utc)
        coupon = Coupon(id=str(uuid.uuid4()), created_at=now, updated_at=now, **data.model_dump())
        async with self._uow_factory() as uow:
            coupon = await uow.coupons.create(coupon)
        logger.info("coupon_created", coupon_id=coupon.id, code=coupon.code)
        return CouponOut.model_validate(coupon)

    async def get(self, principal: Principal, coupon_id: str) -> CouponOut:
        principal.ensure_admin()
        async with self._uow_factory(readonly=True) as uow:
            coupon = await uow.coupons.get_by_id(coupon_id)
        if coupon is None:
            raise NotFoundException("Coupon", coupon_id)
        return CouponOut.model_validate(coupon)

    async def list(self, principal: Principal, *, page: int, size: int) -> tuple[list[CouponOut], int]:
        principal.ensure_admin()
        async with self._uow_factory(readonly=True) as uow:
            coupons = await uow.coupons.list(skip=(page - 1) * size, limit=size)
            total = await uow.coupons.count()
        return [CouponOut.model_validate(c) for c in coupons], total

    async def update(self, principal: Principal, coupon_id: str, data: CouponUpdate) -> CouponOut:
        principal.ensure_admin()
        changes = data.model_dump(exclude_unset=True)
        async with self._uow_factory() as uow:
            coupon = await uow.coupons.get_by_id(coupon_id)
            if coupon is None:
                raise NotFoundException("Coupon", coupon_id)
            _apply_changes(coupon, changes)
            coupon.code = coupon.code.strip().upper()
            try:
                check_coupon_value(coupon.type, coupon.value)
            except ValueError as exc:
                raise ValidationException(str(exc), field="value") from exc
            coupon = await uow.coupons.update(coupon)
        logger.info("coupon_updated", coupon_id=coupon_id, fields=sorted(changes))
        return CouponOut.model_validate(coupon)

    async def delete(self, principal: Principal, coupon_id: str) -> None:
        principal.ensure_admin()
        async with self._uow_factory() as uow:
            if not await uow.coupons.soft_delete(coupon_id):
                raise NotFoundException("Coupon", coupon_id)
        logger.info("coupon_deleted", coupon_id=coupon_id)


class TaxRuleService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def create(self, principal: Principal, data: TaxRuleCreate) -> TaxRuleOut:
        principal.ensure_admin()
        now = datetime.now(timezone.utc)
        rule = TaxRule(id=str(uuid.uuid4()), created_at=now, updated_at=now, **data.model_dump())
        async with self._uow_factory() as uow:
            rule = await uow.tax_rules.create(rule)
        logger.info("tax_rule_created", rule_id=rule.id, country=rule.country, region=rule.region)
        return TaxRuleOut.model_validate(rule)

    async def get(self, principal: Principal, rule_id: str) -> TaxRuleOut:
        principal.ensure_admin()
        async with self._uow_factory(readonly=True) as uow:
            rule = await uow.tax_rules.get_by_id(rule_id)
        if rule is None:
            raise NotFoundException("Tax rule", rule_id)
        return TaxRuleOut.model_validate(rule)

    async def list(
        self,
        principal: Principal,
        *,
        page: int,
        size: int,
        country: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> tuple[list[TaxRuleOut], int]:
        principal.ensure_admin()
        country = country.strip().upper() if country else None
        async with self._uow_factory(readonly=True) as uow:
            rules = await uow.tax_rules.list(
                country=country, is_active=is_active, skip=(page - 1) * size, limit=size
            )
            total = await uow.tax_rules.count(country=country, is_active=is_active)
        return [TaxRuleOut.model_validate(r) for r in rules], total

    async def update(self, principal: Principal, rule_id: str, data: TaxRuleUpdate) -> TaxRuleOut:
        principal.ensure_admin()
        changes = data.model_dump(exclude_unset=True)
        async with self._uow_factory() as uow:
            rule = await uow.tax_rules.get_by_id(rule_id)
            if rule is None:
                raise NotFoundException("Tax rule", rule_id)
            _apply_changes(rule, changes)
            rule.rate = Decimal(str(rule.rate))
            rule.region = rule.region.strip().upper() if rule.region else None
            rule.category = rule.category.strip().upper()
            try:
                check_tax_rate(rule.type, rule.rate)
            except ValueError as exc:
                raise ValidationException(str(exc), field="rate") from exc
            rule = await uow.tax_rules.update(rule)
        logger.info("tax_rule_updated", rule_id=rule_id, fields=sorted(changes))
        return TaxRuleOut.model_validate(rule)

    async def delete(self, principal: Principal, rule_id: str) -> None:
        principal.ensure_admin()
        async with self._uow_factory() as uow:
            if not await uow.tax_rules.soft_delete(rule_id):
                raise NotFoundException("Tax rule", rule_id)
        logger.info("tax_rule_deleted", rule_id=rule_id)

    async def calculate(self, data: TaxCalculateRequest) -> TaxCalculateResponse:
        category = (data.category or settings.checkout.default_tax_category).upper()
        async with self._uow_factory(readonly=True) as uow:
            resolver = TaxResolver(uow.tax_rules)
            rule = await resolver.resolve(data.country, data.region, category)
        return TaxCalculateResponse(
            amount=data.amount,
            tax_amount=TaxResolver.calculate(data.amount, rule),
            rule=TaxRuleOut.model_validate(rule) if rule else None,
        )


class ShippingRateService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def create(self, principal: Principal, data: ShippingRateCreate) -> ShippingRateOut:
        principal.ensure_admin()
        now = datetime.now(timezone.utc)
        rate = ShippingRate(id=str(uuid.uuid4()), created_at=now, updated_at=now, **data.model_dump())
        async with self._uow_factory() as uow:
            rate = await uow.shipping_rates.create(rate)
        logger.info("shipping_rate_created", rate_id=rate.id, method=rate.method)
        return ShippingRateOut.model_validate(rate)

    async def update(self, principal: Principal, rate_id: str, data: ShippingRateUpdate) -> ShippingRateOut:
        principal.ensure_admin()
        changes = data.model_dump(exclude_unset=True)
        async with self._uow_factory() as uow:
            rate = await uow.shipping_rates.get_by_id(rate_id)
            if rate is None:
                raise NotFoundException("Shipping rate", rate_id)
            _apply_changes(rate, changes)
            rate = await uow.shipping_rates.update(rate)
        logger.info("shipping_rate_updated", rate_id=rate_id, fields=sorted(changes))
        return ShippingRateOut.model_validate(rate)

    async def list_for_country(self, country: str, order_amount: Optional[int] = None) -> list[ShippingRateOut]:
        """列出服务该国家的启用运费规则；给出订单金额时附带实际运费"""
        async with self._uow_factory(readonly=True) as uow:
            rates = await uow.shipping_rates.list_active()
        result = []
        for rate in rates:
            if not rate.serves(country):
                continue
            out = ShippingRateOut.model_validate(rate)
            out.effective_cost = rate.cost_for(order_amount) if order_amount is not None else rate.price
            result.append(out)
        return result
