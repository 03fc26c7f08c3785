"""
Payment gateway DTOs (Pydantic v2) used at the application/infrastructure boundary.

Amounts are integers in minor currency units.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator


def _upper_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    return u


class CreateIntent(BaseModel):
    order_id: str
    payment_id: str
    amount: int = Field(gt=0)
    currency: str
    idempotency_key: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _validate_currency(cls, v: str) -> str:
        return _upper_currency(v)


class GatewayIntent(BaseModel):
    intent_id: str
    client_secret: Optional[str] = None
    status: str
    provider: str = "stripe"


class CreateRefund(BaseModel):
    refund_id: str
    payment_intent_id: str
    amount: int = Field(gt=0)
    currency: str
    reason: Optional[str] = None
    idempotency_key: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _validate_currency(cls, v: str) -> str:
        return _upper_currency(v)


class GatewayRefund(BaseModel):
    refund_id: str
    status: str
    provider: str = "stripe"


class WebhookEvent(BaseModel):
    """Verified gateway event; `data` is the event's data.object payload"""
    id: str
    type: str
    provider: str = "stripe"
    data: dict[str, Any] = Field(default_factory=dict)
