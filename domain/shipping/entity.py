"""Shipment entity - fulfilment tracking for a confirmed order."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import uuid

from domain.common.exceptions import IllegalTransitionException


class ShipmentStatus(str, Enum):
    PENDING = "PENDING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


SHIPMENT_TRANSITIONS: dict[ShipmentStatus, frozenset[ShipmentStatus]] = {
    ShipmentStatus.PENDING: frozenset({ShipmentStatus.SHIPPED, ShipmentStatus.CANCELLED}),
    ShipmentStatus.SHIPPED: frozenset({ShipmentStatus.DELIVERED}),
    ShipmentStatus.DELIVERED: frozenset(),
    ShipmentStatus.CANCELLED: frozenset(),
}


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Shipment:
    id: str
    order_id: str
    rate_id: Optional[str]
    status: ShipmentStatus
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.estimated_delivery = _ensure_utc(self.estimated_delivery)
        self.shipped_at = _ensure_utc(self.shipped_at)
        self.delivered_at = _ensure_utc(self.delivered_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @classmethod
    def open(cls, order_id: str, rate_id: Optional[str], **tracking) -> "Shipment":
        now = datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            order_id=order_id,
            rate_id=rate_id,
            status=ShipmentStatus.PENDING,
            created_at=now,
            updated_at=now,
            **tracking,
        )

    def transition_to(self, target: ShipmentStatus) -> None:
        """DELIVERED 只能由 SHIPPED 到达"""
        if target == self.status:
            return
        if target not in SHIPMENT_TRANSITIONS[self.status]:
            raise IllegalTransitionException("shipment", self.status.value, target.value)
        now = datetime.now(timezone.utc)
        if target == ShipmentStatus.SHIPPED:
            self.shipped_at = now
        elif target == ShipmentStatus.DELIVERED:
            self.delivered_at = now
        self.status = target
        self.updated_at = now
