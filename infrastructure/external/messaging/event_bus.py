"""
领域事件发布适配器

实现 application.ports.event_publisher.EventPublisher：
- KafkaEventPublisher: kafka.enabled 时使用 confluent-kafka 投递
- LoggingEventPublisher: 其余情况仅通过 structlog 记录事件
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from core.config import KafkaSettings, settings
from core.logging_config import get_logger
from .base import MessageSink, OutboundMessage
from .serializers.json import JsonSerializer


logger = get_logger(__name__)

H_EVENT_TYPE = "x-event-type"
H_EVENT_ID = "x-event-id"
H_VERSION = "x-version"


class LoggingEventPublisher:
    """把事件写入日志（未配置消息总线时的默认实现）"""

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        logger.info("domain_event", topic=topic, event_id=payload.get("eventId"), payload=payload)

    async def aclose(self) -> None:
        return None


class KafkaEventPublisher:
    """把事件投递到 Kafka；同步 producer 放到线程里执行，不阻塞事件循环"""

    def __init__(self, sink: MessageSink, *, topic_prefix: str = "") -> None:
        self._sink = sink
        self._topic_prefix = topic_prefix

    @classmethod
    def from_settings(cls, cfg: KafkaSettings) -> "KafkaEventPublisher":
        from .providers.kafka.publisher import KafkaSink

        return cls(KafkaSink(cfg, JsonSerializer()), topic_prefix=cfg.topic_prefix)

    def _message(self, topic: str, payload: dict[str, Any]) -> OutboundMessage:
        headers = {H_EVENT_TYPE: topic.encode("utf-8"), H_VERSION: b"v1"}
        event_id = payload.get("eventId")
        if event_id:
            headers[H_EVENT_ID] = str(event_id).encode("utf-8")
        aggregate_id = payload.get("aggregateId")
        # 同一聚合的事件落在同一分区，保持顺序
        key = str(aggregate_id).encode("utf-8") if aggregate_id else None
        return OutboundMessage(value=payload, key=key, headers=headers)

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        full_topic = f"{self._topic_prefix}{topic}"
        result = await asyncio.to_thread(self._sink.send, full_topic, self._message(topic, payload))
        logger.debug(
            "domain_event_published",
            topic=result.topic,
            partition=result.partition,
            offset=result.offset,
        )

    async def aclose(self) -> None:
        await asyncio.to_thread(self._sink.close)


def build_event_publisher(cfg: Optional[KafkaSettings] = None):
    cfg = cfg or settings.kafka
    if cfg.enabled:
        logger.info("event_publisher_selected", kind="kafka", bootstrap_servers=cfg.bootstrap_servers)
        return KafkaEventPublisher.from_settings(cfg)
    logger.info("event_publisher_selected", kind="logging")
    return LoggingEventPublisher()
