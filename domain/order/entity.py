"""
订单领域实体 - 订单聚合根

金额均为最小货币单位（分/便士）的整数。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import uuid

from domain.common.exceptions import (
    DomainValidationException,
    IllegalTransitionException,
    ValidationException,
)


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "PENDING"          # 待支付
    CONFIRMED = "CONFIRMED"      # 已确认
    CANCELLED = "CANCELLED"      # 已取消


# 合法的订单状态转换；CONFIRMED 与 CANCELLED 为终态
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def ensure_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    if target not in ORDER_TRANSITIONS.get(current, frozenset()):
        raise IllegalTransitionException("order", current.value, target.value)


class OrderPaymentStatus(str, Enum):
    """订单聚合支付状态（由支付记录推导）"""
    UNPAID = "UNPAID"
    PAID = "PAID"
    FAILED = "FAILED"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class ShippingAddress:
    line1: str
    city: str
    postcode: str
    country: str
    line2: Optional[str] = None
    region: Optional[str] = None
    recipient: Optional[str] = None

    def __post_init__(self):
        for name in ("line1", "city", "postcode", "country"):
            if not (getattr(self, name) or "").strip():
                raise ValidationException(f"Shipping address {name} is required", field=f"shippingAddress.{name}")
        self.country = self.country.strip().upper()
        if self.region:
            self.region = self.region.strip().upper()

    def to_dict(self) -> dict:
        return {
            "line1": self.line1,
            "line2": self.line2,
            "city": self.city,
            "region": self.region,
            "postcode": self.postcode,
            "country": self.country,
            "recipient": self.recipient,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ShippingAddress":
        return cls(
            line1=data.get("line1", ""),
            line2=data.get("line2"),
            city=data.get("city", ""),
            region=data.get("region"),
            postcode=data.get("postcode", ""),
            country=data.get("country", ""),
            recipient=data.get("recipient"),
        )


@dataclass
class OrderItem:
    """订单项 - 创建后不可变"""

    product_id: str
    quantity: int
    unit_price: int
    category: str = "GENERAL"
    name: Optional[str] = None
    id: Optional[str] = None
    order_id: Optional[str] = None
    total_price: int = 0

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValidationException(
                f"Quantity must be greater than 0 for product {self.product_id}",
                field="quantity",
            )
        if self.unit_price < 0:
            raise ValidationException(
                f"Unit price cannot be negative for product {self.product_id}",
                field="unitPrice",
            )
        self.total_price = self.quantity * self.unit_price


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. totalAmount = subtotal + taxAmount + shippingAmount - discountAmount
    2. 只有 PENDING 订单可以确认或取消
    3. OrderItem / Payment / Refund / Shipment / Invoice 的变更都在订单事务范围内完成
    """

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
    shipping_address: ShippingAddress
    items: list[OrderItem] = field(default_factory=list)
    shipping_rate_id: Optional[str] = None
    coupon_id: Optional[str] = None
    coupon_code: Optional[str] = None
    cancel_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        self._validate_amounts()
        self.currency = (self.currency or "").upper()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.confirmed_at = _ensure_utc(self.confirmed_at)
        self.cancelled_at = _ensure_utc(self.cancelled_at)
        self.deleted_at = _ensure_utc(self.deleted_at)

    def _validate_amounts(self) -> None:
        for name in ("subtotal", "tax_amount", "shipping_amount", "discount_amount"):
            if getattr(self, name) < 0:
                raise DomainValidationException(f"{name} cannot be negative", field=name)
        expected = self.subtotal + self.tax_amount + self.shipping_amount - self.discount_amount
        if self.total_amount != expected:
            raise DomainValidationException(
                f"Order total {self.total_amount} does not match breakdown {expected}",
                field="total_amount",
            )

    @classmethod
    def place(
        cls,
        *,
        user_id: str,
        items: list[OrderItem],
        breakdown,
        currency: str,
        shipping_address: ShippingAddress,
        shipping_rate_id: Optional[str] = None,
        coupon_id: Optional[str] = None,
        coupon_code: Optional[str] = None,
    ) -> "Order":
        """根据价格明细创建新的待支付订单"""
        order_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        for item in items:
            item.id = item.id or str(uuid.uuid4())
            item.order_id = order_id
        return cls(
            id=order_id,
            user_id=user_id,
            status=OrderStatus.PENDING,
            payment_status=OrderPaymentStatus.UNPAID,
            subtotal=breakdown.subtotal,
            tax_amount=breakdown.tax_amount,
            shipping_amount=breakdown.shipping_amount,
            discount_amount=breakdown.discount_amount,
            total_amount=breakdown.total_amount,
            currency=currency,
            shipping_address=shipping_address,
            items=items,
            shipping_rate_id=shipping_rate_id,
            coupon_id=coupon_id,
            coupon_code=coupon_code,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_terminal(self) -> bool:
        return not ORDER_TRANSITIONS[self.status]

    def mark_confirmed(self) -> None:
        """确认订单（内存态），持久化由仓储的条件更新完成"""
        ensure_order_transition(self.status, OrderStatus.CONFIRMED)
        self.status = OrderStatus.CONFIRMED
        self.payment_status = OrderPaymentStatus.PAID
        self.confirmed_at = datetime.now(timezone.utc)
        self.updated_at = self.confirmed_at

    def mark_cancelled(self, reason: Optional[str] = None) -> None:
        ensure_order_transition(self.status, OrderStatus.CANCELLED)
        self.status = OrderStatus.CANCELLED
        self.cancel_reason = reason
        self.cancelled_at = datetime.now(timezone.utc)
        self.updated_at = self.cancelled_at
