"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输

JSON 字段统一使用 camelCase（别名），Python 侧使用 snake_case。
"""
from pydantic import BaseModel, ConfigDict, model_serializer
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone


class DTOBase(BaseModel):
    """Base DTO: camelCase aliases and UTC-Z datetime serialization for all subclasses."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class ReceivedDTO(BaseModel):
    """Webhook 确认响应"""
    received: bool = True
