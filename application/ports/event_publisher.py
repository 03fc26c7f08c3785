"""
Event publisher port.

Publishing is best effort: a failed publish is logged and never propagates
to the caller, because the ledger transaction has already committed.
"""
from __future__ import annotations

from typing import Any, Iterable, Protocol, runtime_checkable

from core.logging_config import get_logger
from domain.common.events import LedgerEvent


logger = get_logger(__name__)


@runtime_checkable
class EventPublisher(Protocol):
    async def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


async def publish_events(publisher: EventPublisher, events: Iterable[LedgerEvent]) -> int:
    """按顺序发布事件，返回成功条数"""
    published = 0
    for event in events:
        try:
            await publisher.publish(event.topic, event.to_message())
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "event_publish_failed",
                topic=event.topic,
                event_id=event.event_id,
                aggregate_id=event.aggregate_id,
                error=str(exc),
            )
            continue
        published += 1
    return published
