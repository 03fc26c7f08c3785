from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from ..exceptions import EventEncodingError


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class JsonSerializer:
    """事件载荷 → 紧凑 UTF-8 JSON；datetime 统一为 UTC `Z` 格式"""

    def dumps(self, obj: Any) -> bytes:
        try:
            return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=_default).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EventEncodingError(str(e)) from e
