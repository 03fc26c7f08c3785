"""
发票领域实体 - 订单确认且已支付时生成的财务快照

发票一经开具不可修改，唯一允许的转换是 ISSUED → VOID。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
import uuid

from domain.common.exceptions import DomainValidationException
from domain.order.entity import Order, OrderPaymentStatus, OrderStatus


class InvoiceStatus(str, Enum):
    ISSUED = "ISSUED"
    VOID = "VOID"


def format_invoice_number(prefix: str, year: int, sequence: int, width: int = 3) -> str:
    """INV-2026-001"""
    return f"{prefix}-{year}-{sequence:0{width}d}"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Invoice:
    id: str
    order_id: str
    user_id: str
    invoice_number: str
    status: InvoiceStatus
    currency: str
    subtotal: int
    tax_amount: int
    shipping_amount: int
    discount_amount: int
    total_amount: int
    billing_address: dict = field(default_factory=dict)
    line_items: list[dict] = field(default_factory=list)
    issued_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.issued_at = _ensure_utc(self.issued_at)
        self.due_at = _ensure_utc(self.due_at)
        self.voided_at = _ensure_utc(self.voided_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @classmethod
    def snapshot(cls, order: Order, *, invoice_number: str, due_days: int) -> "Invoice":
        """按订单当前的金额字段生成快照；订单必须处于 CONFIRMED + PAID"""
        if order.status != OrderStatus.CONFIRMED or order.payment_status != OrderPaymentStatus.PAID:
            raise DomainValidationException(
                "Invoices can only be issued for confirmed and paid orders",
                context={"order_id": order.id, "status": order.status.value},
            )
        issued_at = datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            order_id=order.id,
            user_id=order.user_id,
            invoice_number=invoice_number,
            status=InvoiceStatus.ISSUED,
            currency=order.currency,
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            shipping_amount=order.shipping_amount,
            discount_amount=order.discount_amount,
            total_amount=order.total_amount,
            billing_address=order.shipping_address.to_dict(),
            line_items=[
                {
                    "productId": item.product_id,
                    "name": item.name,
                    "quantity": item.quantity,
                    "unitPrice": item.unit_price,
                    "totalPrice": item.total_price,
                }
                for item in order.items
            ],
            issued_at=issued_at,
            due_at=issued_at + timedelta(days=due_days),
            created_at=issued_at,
            updated_at=issued_at,
        )

    @property
    def is_void(self) -> bool:
        return self.status == InvoiceStatus.VOID
