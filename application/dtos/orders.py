"""Order aggregate DTOs: orders, payments and refunds."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from application.dto import DTOBase
from application.dtos.checkout import CheckoutInitiateRequest, ShippingAddressOut
from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.payment.entity import PaymentStatus, RefundStatus


class OrderItemOut(DTOBase):
    id: Optional[str] = None
    product_id: str
    name: Optional[str] = None
    category: str
    quantity: int
    unit_price: int
    total_price: int


class PaymentOut(DTOBase):
    id: str
    order_id: str
    gateway_intent_id: Optional[str] = None
    amount: int
    currency: str
    status: PaymentStatus
    method: str
    provider: str
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None


class RefundOut(DTOBase):
    id: str
    payment_id: str
    order_id: str
    gateway_refund_id: Optional[str] = None
    amount: int
    currency: str
    status: RefundStatus
    reason: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    succeeded_at: Optional[datetime] = None


class OrderOut(DTOBase):
    id: str
    user_id: str
    status: OrderStatus
    payment_status: OrderPaymentStatus
    subtotal: int
    tax_amount: int
    shipping_amount: int
    discount_amount: int
    total_amount: int
    currency: str
    shipping_address: ShippingAddressOut
    shipping_rate_id: Optional[str] = None
    coupon_code: Optional[str] = None
    cancel_reason: Optional[str] = None
    items: list[OrderItemOut] = Field(default_factory=list)
    payments: Optional[list[PaymentOut]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class OrderStatusUpdate(DTOBase):
    status: OrderStatus
    reason: Optional[str] = Field(None, max_length=500)


class CreateIntentRequest(DTOBase):
    order_id: str


class CreateIntentResponse(DTOBase):
    payment_id: str
    order_id: str
    payment_intent_id: str
    client_secret: Optional[str] = None
    amount: int
    currency: str


class RefundCreateRequest(DTOBase):
    payment_id: str
    amount: int = Field(..., gt=0, description="退款金额（最小货币单位）")
    reason: Optional[str] = Field(None, max_length=500)


class OrderCreate(CheckoutInitiateRequest):
    """直接下单（不创建支付意图，稍后通过 create-intent 发起支付）"""
