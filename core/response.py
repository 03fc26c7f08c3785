"""
统一响应格式定义

成功: {"success": true, "message": ..., "data": ...}
失败: {"success": false, "message": ..., "data": null, "error": {"code": <ErrorKind>, ...}}
"""
from typing import Any, Optional, Generic, TypeVar
from pydantic import BaseModel, Field, field_serializer
from datetime import datetime, timezone
from shared.codes import ErrorKind


T = TypeVar("T")


class ErrorDetail(BaseModel):
    """错误详情"""
    code: ErrorKind
    message: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """序列化时间戳为 UTC ISO8601，统一使用 Z 结尾"""
        ts = timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)
        s = ts.isoformat()
        return s.replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    """统一响应模型"""
    success: bool = True
    message: str = "Success"
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


class PaginatedData(BaseModel, Generic[T]):
    """分页数据模型"""
    items: list[T]
    total: int
    page: int
    size: int
    pages: int


def success_response(data: Any = None, message: str = "Success") -> Response:
    """
    创建成功响应

    Args:
        data: 返回数据
        message: 成功消息
    """
    return Response(success=True, message=message, data=data, error=None)


def error_response(
    kind: ErrorKind,
    message: str,
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Response:
    """
    创建错误响应

    Args:
        kind: 错误类别
        message: 错误消息
        details: 错误详情（上下文）
        field: 错误字段
        request_id: 请求ID
    """
    return Response(
        success=False,
        message=message,
        data=None,
        error=ErrorDetail(
            code=kind,
            message=message,
            details=details,
            field=field,
            request_id=request_id,
        ),
    )


def paginated_response(
    items: list,
    total: int,
    page: int,
    size: int,
    message: str = "Success"
) -> Response[PaginatedData]:
    """
    创建分页响应

    Args:
        items: 数据列表
        total: 总数
        page: 当前页
        size: 每页大小
        message: 成功消息
    """
    pages = (total + size - 1) // size if size > 0 else 0

    return Response(
        success=True,
        message=message,
        data=PaginatedData(
            items=items,
            total=total,
            page=page,
            size=size,
            pages=pages
        ),
        error=None
    )
