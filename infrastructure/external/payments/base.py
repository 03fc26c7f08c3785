"""
Base payment client implementing shared concerns: bounded timeout, retry,
logging and status mapping.

Concrete providers subclass it, implement the gateway port and translate
their SDK errors through `_translate`.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        total_timeout: float = 10.0,
        retry_max: int = 2,
        retry_base: float = 0.2,
    ) -> None:
        self._total_timeout = total_timeout
        self._retry_max = retry_max
        self._retry_base = retry_base

    def _translate(self, exc: Exception) -> PaymentProviderError:
        """SDK 异常 → 统一网关异常；子类按需细分可重试错误"""
        return PaymentProviderError(str(exc), provider=self.provider)

    async def _attempt(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            # SDK 是同步阻塞的，放到线程里执行
            return await asyncio.to_thread(fn, *args, **kwargs)
        except PaymentProviderError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise self._translate(exc) from exc

    async def _retrying(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_max) + 1),
            wait=wait_exponential(multiplier=self._retry_base, min=0.1, max=2.0),
            retry=retry_if_exception_type(PaymentRecoverableError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self._log("payment_gateway_retry", operation=operation, attempt=attempt.retry_state.attempt_number)
                return await self._attempt(fn, *args, **kwargs)

    async def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """带总超时与重试的网关调用；超时视为可重试错误"""
        try:
            return await asyncio.wait_for(
                self._retrying(operation, fn, *args, **kwargs),
                timeout=self._total_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("payment_gateway_timeout", provider=self.provider, operation=operation)
            raise PaymentRecoverableError(
                f"{operation} timed out after {self._total_timeout}s",
                provider=self.provider,
            ) from exc

    # Helpers
    def _map_status(self, provider_status: Optional[str], *, kind: Optional[str] = None) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(kind or self.provider, {})
        return mapping.get(provider_status or "", provider_status or "")

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
