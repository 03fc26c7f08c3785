"""Pricing reference data DTOs: coupons, tax rules and shipping rates."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_serializer, field_validator, model_validator

from application.dto import DTOBase
from domain.pricing.entity import CouponStatus, CouponType, TaxType


def _country_code(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if len(v) != 2 or not v.isalpha():
        raise ValueError("country must be exactly two letters")
    return v.upper()


def check_coupon_value(coupon_type: CouponType, value: int) -> None:
    if coupon_type == CouponType.PERCENTAGE and not 1 <= value <= 100:
        raise ValueError("percentage coupon value must be between 1 and 100")
    if coupon_type == CouponType.FIXED and value <= 0:
        raise ValueError("fixed coupon value must be greater than 0")


def check_tax_rate(tax_type: TaxType, rate: Decimal) -> None:
    if tax_type == TaxType.PERCENTAGE and not Decimal(0) <= rate <= Decimal(100):
        raise ValueError("percentage tax rate must be between 0 and 100")
    if tax_type == TaxType.FIXED and rate < 0:
        raise ValueError("fixed tax rate cannot be negative")


# ---- coupons ----

class CouponCreate(DTOBase):
    code: str = Field(..., min_length=1, max_length=50)
    type: CouponType
    value: int
    status: CouponStatus = CouponStatus.ACTIVE
    min_order_amount: Optional[int] = Field(None, ge=0)
    max_discount_amount: Optional[int] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=0)
    expires_at: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def _check_value(self):
        check_coupon_value(self.type, self.value)
        return self


class CouponUpdate(DTOBase):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    type: Optional[CouponType] = None
    value: Optional[int] = None
    status: Optional[CouponStatus] = None
    min_order_amount: Optional[int] = Field(None, ge=0)
    max_discount_amount: Optional[int] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=0)
    expires_at: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=500)


class CouponOut(DTOBase):
    id: str
    code: str
    type: CouponType
    value: int
    status: CouponStatus
    min_order_amount: Optional[int] = None
    max_discount_amount: Optional[int] = None
    usage_limit: Optional[int] = None
    usage_count: int
    expires_at: Optional[datetime] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---- tax rules ----

class TaxRuleCreate(DTOBase):
    name: str = Field(..., min_length=1, max_length=100)
    type: TaxType = TaxType.PERCENTAGE
    rate: Optional[Decimal] = Field(None, description="百分比（0-100）或固定税额")
    country: str
    region: Optional[str] = Field(None, max_length=100)
    category: str = Field("GENERAL", max_length=50)
    is_default: bool = False
    is_active: bool = True

    @field_validator("country")
    @classmethod
    def _country(cls, v):
        return _country_code(v)

    @model_validator(mode="after")
    def _check_rate(self):
        if self.rate is None:
            raise ValueError("rate is required")
        check_tax_rate(self.type, self.rate)
        return self


class TaxRuleUpdate(DTOBase):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[TaxType] = None
    rate: Optional[Decimal] = None
    country: Optional[str] = None
    region: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = Field(None, max_length=50)
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("country")
    @classmethod
    def _country(cls, v):
        return _country_code(v)


class TaxRuleOut(DTOBase):
    id: str
    name: str
    type: TaxType
    rate: Decimal
    country: str
    region: Optional[str] = None
    category: str
    is_default: bool
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("rate")
    def _rate(self, rate: Decimal) -> float:
        return float(rate)


class TaxCalculateRequest(DTOBase):
    amount: int = Field(..., ge=0)
    country: str
    region: Optional[str] = None
    category: Optional[str] = None

    @field_validator("country")
    @classmethod
    def _country(cls, v):
        return _country_code(v)


class TaxCalculateResponse(DTOBase):
    amount: int
    tax_amount: int
    rule: Optional[TaxRuleOut] = None


# ---- shipping rates ----

class ShippingRateCreate(DTOBase):
    name: str = Field(..., min_length=1, max_length=100)
    method: str = Field(..., min_length=1, max_length=50)
    price: int = Field(..., ge=0)
    free_threshold: Optional[int] = Field(None, ge=0)
    countries: list[str] = Field(..., min_length=1)
    estimated_days: Optional[int] = Field(None, ge=0)
    is_active: bool = True

    @field_validator("countries")
    @classmethod
    def _countries(cls, v: list[str]) -> list[str]:
        return [_country_code(c) for c in v]


class ShippingRateUpdate(DTOBase):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    price: Optional[int] = Field(None, ge=0)
    free_threshold: Optional[int] = Field(None, ge=0)
    countries: Optional[list[str]] = Field(None, min_length=1)
    estimated_days: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None

    @field_validator("countries")
    @classmethod
    def _countries(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return v
        return [_country_code(c) for c in v]


class ShippingRateOut(DTOBase):
    id: str
    name: str
    method: str
    price: int
    free_threshold: Optional[int] = None
    countries: list[str] = Field(default_factory=list)
    estimated_days: Optional[int] = None
    is_active: bool
    effective_cost: Optional[int] = None
