"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    CreateIntent,
    CreateRefund,
    GatewayIntent,
    GatewayRefund,
    WebhookEvent,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the card payment provider.

    create_intent / create_refund raise PaymentProviderError (or a subclass)
    on failure; verify_webhook raises PaymentSignatureError when the
    signature does not match the raw body.
    """

    provider: str

    async def create_intent(self, req: CreateIntent) -> GatewayIntent: ...

    async def create_refund(self, req: CreateRefund) -> GatewayRefund: ...

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent: ...
