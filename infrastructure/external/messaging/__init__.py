from .base import DeliveryReport, MessageSink, OutboundMessage
from .event_bus import (
    KafkaEventPublisher,
    LoggingEventPublisher,
    build_event_publisher,
)

__all__ = [
    "DeliveryReport",
    "MessageSink",
    "OutboundMessage",
    "KafkaEventPublisher",
    "LoggingEventPublisher",
    "build_event_publisher",
]
