"""
消息总线的最小抽象：一条待投递消息、投递回执、序列化器与同步 sink。
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol


Headers = Dict[str, bytes]


@dataclass(slots=True)
class OutboundMessage:
    value: Any
    # 分区键；同一聚合的事件使用同一个 key
    key: Optional[bytes] = None
    headers: Headers = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class DeliveryReport:
    topic: str
    partition: int
    offset: int
    timestamp: Optional[int] = None


class MessageSerializer(Protocol):
    def dumps(self, obj: Any) -> bytes: ...


class MessageSink(abc.ABC):
    """同步投递；调用方负责把它放到线程里执行"""

    @abc.abstractmethod
    def send(self, topic: str, message: OutboundMessage) -> DeliveryReport: ...

    @abc.abstractmethod
    def close(self) -> None: ...
