"""
Ledger domain events.

Dataclass events record important order/payment lifecycle facts for downstream
handling (messaging, projections). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
import uuid


class Topics:
    ORDER_CREATED = "order.created"
    ORDER_CONFIRMED = "order.confirmed"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_ABANDONED = "order.abandoned"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    REFUND_CREATED = "refund.created"
    REFUND_SUCCEEDED = "refund.succeeded"
    INVOICE_ISSUED = "invoice.issued"
    INVOICE_VOIDED = "invoice.voided"


@dataclass
class LedgerEvent:
    topic: str
    aggregate_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_message(self) -> dict[str, Any]:
        return {
            "eventId": self.event_id,
            "eventType": self.topic,
            "aggregateId": self.aggregate_id,
            "occurredAt": self.occurred_at.isoformat().replace("+00:00", "Z"),
            "data": self.payload,
        }


class EventCollector:
    """在事务内收集事件，提交成功后统一发布"""

    def __init__(self) -> None:
        self.events: list[LedgerEvent] = []

    def record(self, topic: str, aggregate_id: str, **payload: Any) -> None:
        self.events.append(LedgerEvent(topic=topic, aggregate_id=aggregate_id, payload=payload))

    def clear_events(self) -> list[LedgerEvent]:
        events, self.events = self.events, []
        return events
