"""Checkout request/response DTOs."""
from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator

from application.dto import DTOBase


class LineItemIn(DTOBase):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0, description="数量，必须大于0")
    unit_price: int = Field(..., ge=0, description="单价（最小货币单位）")
    category: Optional[str] = Field(None, description="税务类目，缺省为配置的默认类目")
    name: Optional[str] = Field(None, max_length=255)


class ShippingAddressIn(DTOBase):
    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    region: Optional[str] = None
    postcode: str = Field(..., min_length=1)
    country: str = Field(..., min_length=2, max_length=2)
    recipient: Optional[str] = None

    @field_validator("country")
    @classmethod
    def _upper_country(cls, v: str) -> str:
        if not v.isalpha():
            raise ValueError("country must be ISO-3166 alpha-2")
        return v.upper()


class ShippingAddressOut(DTOBase):
    line1: str
    line2: Optional[str] = None
    city: str
    region: Optional[str] = None
    postcode: str
    country: str
    recipient: Optional[str] = None


class CheckoutSummaryRequest(DTOBase):
    items: list[LineItemIn] = Field(..., min_length=1)
    shipping_rate_id: str
    country: str = Field(..., min_length=2, max_length=2)
    region: Optional[str] = None
    coupon_code: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class TaxLineOut(DTOBase):
    category: str
    taxable_amount: int
    tax_amount: int
    rule_id: Optional[str] = None


class PriceBreakdownOut(DTOBase):
    subtotal: int
    tax_amount: int
    shipping_amount: int
    discount_amount: int
    total_amount: int
    currency: str
    coupon_code: Optional[str] = None
    tax_lines: list[TaxLineOut] = Field(default_factory=list)


class CheckoutInitiateRequest(DTOBase):
    items: list[LineItemIn] = Field(..., min_length=1)
    shipping_address: ShippingAddressIn
    shipping_rate_id: str
    coupon_code: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class CheckoutInitiateResponse(DTOBase):
    order_id: str
    payment_id: str
    payment_intent_id: str
    client_secret: Optional[str] = None
    total_amount: int
    currency: str


class CheckoutConfirmRequest(DTOBase):
    order_id: str
    payment_intent_id: str


class ApplyCouponRequest(DTOBase):
    code: str = Field(..., min_length=1)
    order_amount: int = Field(..., ge=0)


class ApplyCouponResponse(DTOBase):
    coupon_id: str
    code: str
    discount_amount: int
