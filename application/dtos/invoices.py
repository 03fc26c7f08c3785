"""Invoice DTOs."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from application.dto import DTOBase
from domain.invoice.entity import InvoiceStatus


class InvoiceOut(DTOBase):
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
    billing_address: dict[str, Any] = Field(default_factory=dict)
    line_items: list[dict[str, Any]] = Field(default_factory=list)
    issued_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
