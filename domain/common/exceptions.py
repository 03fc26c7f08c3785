"""领域层业务异常定义，供领域与基础设施使用。

异常只携带 (kind, message, context)，HTTP 状态码映射只在核心（core）层完成，
避免领域层反向依赖传输层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import ErrorKind


class BusinessException(Exception):
    """业务异常基类"""

    kind: ErrorKind = ErrorKind.UNPROCESSABLE

    def __init__(
        self,
        message: str,
        *,
        kind: Optional[ErrorKind] = None,
        context: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        if kind is not None:
            self.kind = kind
        self.message = message
        self.context = context
        self.field = field
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class ValidationException(BusinessException):
    """请求数据不合法（400）"""
    kind = ErrorKind.VALIDATION


class UnauthorizedException(BusinessException):
    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(message, **kwargs)


class ForbiddenException(BusinessException):
    kind = ErrorKind.FORBIDDEN

    def __init__(self, message: str = "You do not have permission to perform this action", **kwargs):
        super().__init__(message, **kwargs)


class NotFoundException(BusinessException):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, identifier: Optional[str] = None):
        context = {"resource": resource}
        if identifier is not None:
            context["id"] = identifier
        super().__init__(f"{resource} not found", context=context)


class ConflictException(BusinessException):
    kind = ErrorKind.CONFLICT


class UnprocessableException(BusinessException):
    """业务规则不满足（422）"""
    kind = ErrorKind.UNPROCESSABLE


class DomainValidationException(UnprocessableException):
    """非法状态转换等领域规则错误"""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, field=field, context=context)


class IllegalTransitionException(DomainValidationException):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Cannot transition {entity} from {current} to {target}",
            field="status",
            context={"entity": entity, "from": current, "to": target},
        )
