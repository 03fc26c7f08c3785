"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

- Intents: `stripe.PaymentIntent.create` with automatic payment methods.
- Refunds: `stripe.Refund.create` against the payment intent.
- Webhooks: `stripe.Webhook.construct_event` over the raw body and the
  `Stripe-Signature` header.

Idempotency keys are passed through on every create call so a retried
request never creates a second gateway resource.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import stripe

from application.dtos.payments import (
    CreateIntent,
    CreateRefund,
    GatewayIntent,
    GatewayRefund,
    WebhookEvent,
)
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)


logger = get_logger(__name__)


class StripeClient(BasePaymentClient):
    provider = "stripe"

    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        cfg: Optional[PaymentSettings] = None,
    ):
        cfg = cfg or payment_settings
        super().__init__(
            total_timeout=cfg.timeouts.total,
            retry_max=cfg.retry.max,
            retry_base=cfg.retry.base_backoff,
        )
        self._secret_key = secret_key or cfg.stripe.secret_key
        self._webhook_secret = webhook_secret or cfg.stripe.webhook_secret
        self._tolerance = cfg.webhook.tolerance_seconds
        self._api_version = cfg.stripe.api_version

    def _request_options(self, idempotency_key: Optional[str]) -> dict[str, Any]:
        if not self._secret_key:
            raise RuntimeError("PAYMENT__STRIPE__SECRET_KEY not configured")
        opts: dict[str, Any] = {"api_key": self._secret_key}
        if idempotency_key:
            opts["idempotency_key"] = idempotency_key
        if self._api_version:
            opts["stripe_version"] = self._api_version
        return opts

    def _translate(self, exc: Exception) -> PaymentProviderError:
        if isinstance(exc, (stripe.RateLimitError, stripe.APIConnectionError)):
            return PaymentRecoverableError(str(exc), provider=self.provider, provider_code=getattr(exc, "code", None))
        if isinstance(exc, stripe.StripeError):
            status = getattr(exc, "http_status", None) or 0
            message = getattr(exc, "user_message", None) or str(exc)
            if status >= 500:
                return PaymentRecoverableError(message, provider=self.provider, provider_code=exc.code)
            return PaymentProviderError(message, provider=self.provider, provider_code=exc.code)
        return PaymentProviderError(str(exc), provider=self.provider)

    async def create_intent(self, req: CreateIntent) -> GatewayIntent:
        metadata = {"order_id": req.order_id, "payment_id": req.payment_id, **req.metadata}
        pi = await self._call(
            "create_intent",
            stripe.PaymentIntent.create,
            amount=req.amount,
            currency=req.currency.lower(),
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
            **self._request_options(req.idempotency_key),
        )
        self._log("stripe_intent_created", order_id=req.order_id, intent_id=pi.id, status=pi.status)
        return GatewayIntent(
            intent_id=str(pi.id),
            client_secret=getattr(pi, "client_secret", None),
            status=self._map_status(pi.status),
            provider=self.provider,
        )

    async def create_refund(self, req: CreateRefund) -> GatewayRefund:
        metadata = {"refund_id": req.refund_id, **req.metadata}
        if req.reason:
            # Stripe 的 reason 是枚举值，自由文本放在 metadata
            metadata["reason"] = req.reason[:500]
        refund = await self._call(
            "create_refund",
            stripe.Refund.create,
            payment_intent=req.payment_intent_id,
            amount=req.amount,
            metadata=metadata,
            **self._request_options(req.idempotency_key),
        )
        self._log("stripe_refund_created", refund_id=refund.id, status=refund.status)
        return GatewayRefund(
            refund_id=str(refund.id),
            status=self._map_status(refund.status, kind="stripe_refund"),
            provider=self.provider,
        )

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        if not self._webhook_secret:
            raise RuntimeError("PAYMENT__STRIPE__WEBHOOK_SECRET not configured")
        if not signature:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)
        try:
            stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=self._webhook_secret,
                tolerance=self._tolerance,
            )
        except stripe.SignatureVerificationError as exc:
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider) from exc
        except ValueError as exc:
            raise PaymentSignatureError("Malformed webhook payload", provider=self.provider) from exc

        # 签名通过后再解析原始报文，得到普通 dict
        body = json.loads(payload)
        return WebhookEvent(
            id=str(body.get("id", "")),
            type=str(body.get("type", "")),
            provider=self.provider,
            data=(body.get("data") or {}).get("object") or {},
        )
