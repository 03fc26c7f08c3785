from typing import Optional


class EventBusError(Exception):
    """事件总线错误基类；EventPublisher 在边界处吞掉并记录日志"""


class EventEncodingError(EventBusError):
    pass


class EventDeliveryError(EventBusError):
    def __init__(self, message: str, *, topic: Optional[str] = None) -> None:
        super().__init__(message)
        self.topic = topic
