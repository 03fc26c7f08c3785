"""
PricingEngine - 组合税率/运费/优惠券得出完整价格明细

税费基于折扣前的小计按类目计算，折扣不减少税额。
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Optional, Sequence

from domain.common.exceptions import ValidationException
from domain.order.entity import OrderItem
from .resolvers import CouponValidator, ShippingRateResolver, TaxResolver


@dataclass(frozen=True)
class TaxLine:
    category: str
    taxable_amount: int
    tax_amount: int
    rule_id: Optional[str] = None


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: int
    tax_amount: int
    shipping_amount: int
    discount_amount: int
    total_amount: int
    coupon_id: Optional[str] = None
    coupon_code: Optional[str] = None
    tax_lines: tuple[TaxLine, ...] = field(default_factory=tuple)


class PricingEngine:
    def __init__(
        self,
        tax_resolver: TaxResolver,
        shipping_resolver: ShippingRateResolver,
        coupon_validator: CouponValidator,
    ) -> None:
        self.tax_resolver = tax_resolver
        self.shipping_resolver = shipping_resolver
        self.coupon_validator = coupon_validator

    @staticmethod
    def _validate_items(items: Sequence[OrderItem]) -> None:
        if not items:
            raise ValidationException("At least one item is required", field="items")
        for item in items:
            if item.quantity <= 0:
                raise ValidationException(
                    f"Quantity must be greater than 0 for product {item.product_id}",
                    field="quantity",
                )

    async def price(
        self,
        items: Sequence[OrderItem],
        *,
        shipping_rate_id: str,
        country: str,
        region: Optional[str] = None,
        coupon_code: Optional[str] = None,
    ) -> PriceBreakdown:
        self._validate_items(items)
        subtotal = sum(item.quantity * item.unit_price for item in items)

        discount_amount = 0
        coupon_id = None
        applied_code = None
        if coupon_code:
            applied = await self.coupon_validator.validate(coupon_code, subtotal)
            discount_amount = applied.discount_amount
            coupon_id, applied_code = applied.coupon_id, applied.code

        by_category: "OrderedDict[str, int]" = OrderedDict()
        for item in items:
            key = (item.category or "GENERAL").upper()
            by_category[key] = by_category.get(key, 0) + item.quantity * item.unit_price

        tax_lines = []
        for category, taxable in by_category.items():
            rule = await self.tax_resolver.resolve(country, region, category)
            tax_lines.append(
                TaxLine(
                    category=category,
                    taxable_amount=taxable,
                    tax_amount=self.tax_resolver.calculate(taxable, rule),
                    rule_id=rule.id if rule else None,
                )
            )
        tax_amount = sum(line.tax_amount for line in tax_lines)

        shipping_amount = await self.shipping_resolver.resolve(shipping_rate_id, country, subtotal)

        return PriceBreakdown(
            subtotal=subtotal,
            tax_amount=tax_amount,
            shipping_amount=shipping_amount,
            discount_amount=discount_amount,
            total_amount=subtotal + tax_amount + shipping_amount - discount_amount,
            coupon_id=coupon_id,
            coupon_code=applied_code,
            tax_lines=tuple(tax_lines),
        )
