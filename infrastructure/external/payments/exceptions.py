"""
Exceptions for payment providers mapped to unified BusinessException kinds.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes import ErrorKind


def _context(provider: str, provider_code: Optional[str], details: Optional[dict]) -> dict:
    ctx = {"provider": provider}
    if provider_code:
        ctx["provider_code"] = provider_code
    if details:
        ctx.update(details)
    return ctx


class PaymentProviderError(BusinessException):
    """网关拒绝请求；消息原样保留便于排查（422）"""
    kind = ErrorKind.UNPROCESSABLE

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        self.provider = provider
        self.provider_code = provider_code
        super().__init__(message, context=_context(provider, provider_code, details))


class PaymentRecoverableError(PaymentProviderError):
    """超时/网络/限流等可重试错误；重试耗尽后仍以 422 暴露"""


class PaymentSignatureError(BusinessException):
    """Webhook 签名缺失或不匹配（400）"""
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        self.provider = provider
        super().__init__(message, context=_context(provider, None, details))
