"""
定价组件：税率解析、运费解析、优惠券校验

所有组件都是只读的；优惠券使用次数只在下单成功时递增。
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from domain.common.exceptions import NotFoundException, UnprocessableException, ValidationException
from .entity import Coupon, CouponStatus, ShippingRate, TaxRule
from .repository import CouponRepository, ShippingRateRepository, TaxRuleRepository


def select_tax_rule(rules: Iterable[TaxRule], region: Optional[str]) -> Optional[TaxRule]:
    """
    规则优先级：
    1. 国家 + 地区 + 类目完全匹配
    2. 地区为空且 is_default=True 的国家级默认规则
    3. 无规则（不计税）
    """
    active = [r for r in rules if r.is_active and r.deleted_at is None]
    wanted_region = region.strip().upper() if region else None
    if wanted_region:
        for rule in active:
            if rule.region == wanted_region:
                return rule
    for rule in active:
        if rule.region is None and rule.is_default:
            return rule
    return None


class TaxResolver:
    def __init__(self, repository: TaxRuleRepository) -> None:
        self._repository = repository

    async def resolve(self, country: str, region: Optional[str], category: str) -> Optional[TaxRule]:
        rules = await self._repository.find_active(country.strip().upper(), category.strip().upper())
        return select_tax_rule(rules, region)

    @staticmethod
    def calculate(amount: int, rule: Optional[TaxRule]) -> int:
        if rule is None or not rule.is_active:
            return 0
        return rule.calculate(amount)


class ShippingRateResolver:
    def __init__(self, repository: ShippingRateRepository) -> None:
        self._repository = repository

    async def get_rate(self, rate_id: str, country: str) -> ShippingRate:
        rate = await self._repository.get_by_id(rate_id)
        if rate is None or not rate.is_active:
            raise NotFoundException("Shipping rate", rate_id)
        if not rate.serves(country):
            raise ValidationException(
                f"Shipping rate does not deliver to {country}",
                field="country",
                context={"shipping_rate_id": rate_id, "country": country},
            )
        return rate

    async def resolve(self, rate_id: str, country: str, order_amount: int) -> int:
        rate = await self.get_rate(rate_id, country)
        return rate.cost_for(order_amount)


@dataclass(frozen=True)
class CouponApplication:
    coupon_id: str
    code: str
    discount_amount: int


def check_coupon(coupon: Coupon, order_amount: int, now: Optional[datetime] = None) -> CouponApplication:
    if coupon.status != CouponStatus.ACTIVE:
        raise UnprocessableException("Coupon is not active", field="couponCode")
    if coupon.is_expired(now):
        raise UnprocessableException("Coupon has expired", field="couponCode")
    if coupon.is_exhausted():
        raise UnprocessableException("Coupon usage limit reached", field="couponCode")
    if coupon.min_order_amount is not None and order_amount < coupon.min_order_amount:
        raise UnprocessableException(
            f"Order amount must be at least {coupon.min_order_amount} to use this coupon",
            field="couponCode",
            context={"min_order_amount": coupon.min_order_amount},
        )
    return CouponApplication(
        coupon_id=coupon.id,
        code=coupon.code,
        discount_amount=coupon.discount_for(order_amount),
    )


class CouponValidator:
    def __init__(self, repository: CouponRepository) -> None:
        self._repository = repository

    async def validate(self, code: str, order_amount: int) -> CouponApplication:
        coupon = await self._repository.get_by_code(code.strip().upper())
        if coupon is None:
            raise NotFoundException("Coupon", code)
        return check_coupon(coupon, order_amount, datetime.now(timezone.utc))
