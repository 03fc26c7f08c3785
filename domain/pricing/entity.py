"""
定价相关领域实体：优惠券、税率规则、运费规则
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional


class CouponType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class CouponStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class TaxType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def percent_of(amount: int, rate) -> int:
    """amount * rate / 100，四舍五入到最小货币单位"""
    value = Decimal(amount) * Decimal(str(rate)) / Decimal(100)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass
class Coupon:
    id: str
    code: str
    type: CouponType
    value: int
    status: CouponStatus = CouponStatus.ACTIVE
    min_order_amount: Optional[int] = None
    max_discount_amount: Optional[int] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0
    expires_at: Optional[datetime] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        self.code = self.code.strip().upper()
        self.expires_at = _ensure_utc(self.expires_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.deleted_at = _ensure_utc(self.deleted_at)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.expires_at is not None and self.expires_at < now

    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.usage_count >= self.usage_limit

    def discount_for(self, order_amount: int) -> int:
        """
        PERCENTAGE: min(orderAmount * value / 100, maxDiscountAmount)
        FIXED: min(value, orderAmount)
        """
        if self.type == CouponType.PERCENTAGE:
            discount = percent_of(order_amount, self.value)
            if self.max_discount_amount is not None:
                discount = min(discount, self.max_discount_amount)
            return discount
        return min(self.value, order_amount)


@dataclass
class TaxRule:
    id: str
    name: str
    type: TaxType
    rate: Decimal
    country: str
    region: Optional[str] = None
    category: str = "GENERAL"
    is_default: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        self.rate = Decimal(str(self.rate))
        self.country = self.country.strip().upper()
        self.region = self.region.strip().upper() if self.region else None
        self.category = (self.category or "GENERAL").strip().upper()

    def calculate(self, amount: int) -> int:
        if self.type == TaxType.PERCENTAGE:
            return percent_of(amount, self.rate)
        # 固定税额与金额无关
        return int(self.rate.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass
class ShippingRate:
    id: str
    name: str
    method: str
    price: int
    countries: list[str] = field(default_factory=list)
    free_threshold: Optional[int] = None
    estimated_days: Optional[int] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        self.countries = [c.strip().upper() for c in (self.countries or [])]
        self.method = self.method.strip().upper()

    def serves(self, country: str) -> bool:
        return (country or "").strip().upper() in self.countries

    def cost_for(self, order_amount: int) -> int:
        if self.free_threshold is not None and order_amount >= self.free_threshold:
            return 0
        return self.price
