"""Shipment DTOs."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from application.dto import DTOBase
from domain.shipping.entity import ShipmentStatus


class ShipmentCreate(DTOBase):
    order_id: str
    rate_id: Optional[str] = None
    carrier: Optional[str] = Field(None, max_length=100)
    tracking_number: Optional[str] = Field(None, max_length=100)
    estimated_delivery: Optional[datetime] = None


class ShipmentUpdate(DTOBase):
    status: Optional[ShipmentStatus] = None
    carrier: Optional[str] = Field(None, max_length=100)
    tracking_number: Optional[str] = Field(None, max_length=100)
    estimated_delivery: Optional[datetime] = None


class ShipmentOut(DTOBase):
    id: str
    order_id: str
    rate_id: Optional[str] = None
    status: ShipmentStatus
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
