import hashlib
import hmac
import json
import time
from typing import Optional
from types import SimpleNamespace

import pytest

stripe = pytest.importorskip("stripe")

from application.dtos.payments import CreateIntent, CreateRefund
from core.settings import PaymentSettings
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)
from infrastructure.external.payments.stripe_client import StripeClient


WEBHOOK_SECRET = "whsec_test_secret"


def _settings(**overrides) -> PaymentSettings:
    cfg = PaymentSettings()
    cfg.stripe.secret_key = "sk_test_123"
    cfg.stripe.webhook_secret = WEBHOOK_SECRET
    cfg.retry.base_backoff = 0.0
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    ts = timestamp or int(time.time())
    signed = f"{ts}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def _intent_request() -> CreateIntent:
    return CreateIntent(
        order_id="order-1",
        payment_id="pay-1",
        amount=6500,
        currency="gbp",
        idempotency_key="key-1",
    )


def test_factory_returns_stripe_client():
    assert isinstance(get_payment_gateway("stripe"), StripeClient)
    with pytest.raises(ValueError):
        get_payment_gateway("paypal")


def test_verify_webhook_with_real_signature():
    client = StripeClient(cfg=_settings())
    payload = json.dumps(
        {
            "id": "evt_1",
            "object": "event",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_1", "object": "payment_intent", "status": "succeeded"}},
        }
    ).encode()

    event = client.verify_webhook(payload, _sign(payload))

    assert event.id == "evt_1"
    assert event.type == "payment_intent.succeeded"
    assert event.provider == "stripe"
    assert event.data["id"] == "pi_1"


def test_verify_webhook_rejects_tampered_body():
    client = StripeClient(cfg=_settings())
    payload = b'{"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {}}}'
    signature = _sign(payload)

    with pytest.raises(PaymentSignatureError):
        client.verify_webhook(payload.replace(b"evt_1", b"evt_2"), signature)


def test_verify_webhook_rejects_wrong_secret_and_missing_header():
    client = StripeClient(cfg=_settings())
    payload = b'{"id": "evt_1", "type": "x", "data": {"object": {}}}'

    with pytest.raises(PaymentSignatureError):
        client.verify_webhook(payload, _sign(payload, secret="whsec_other"))
    with pytest.raises(PaymentSignatureError):
        client.verify_webhook(payload, None)


def test_verify_webhook_rejects_stale_timestamp():
    client = StripeClient(cfg=_settings())
    payload = b'{"id": "evt_1", "type": "x", "data": {"object": {}}}'

    with pytest.raises(PaymentSignatureError):
        client.verify_webhook(payload, _sign(payload, timestamp=int(time.time()) - 3600))


def test_verify_webhook_requires_secret():
    cfg = _settings()
    cfg.stripe.webhook_secret = None
    client = StripeClient(cfg=cfg)
    with pytest.raises(RuntimeError):
        client.verify_webhook(b"{}", "t=1,v1=abc")


@pytest.mark.asyncio
async def test_create_intent_passes_idempotency_key(monkeypatch):
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id="pi_123", status="requires_payment_method", client_secret="pi_123_secret")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    client = StripeClient(cfg=_settings())

    intent = await client.create_intent(_intent_request())

    assert intent.intent_id == "pi_123"
    assert intent.client_secret == "pi_123_secret"
    assert intent.status == "PENDING"
    assert calls[0]["amount"] == 6500
    assert calls[0]["currency"] == "gbp"
    assert calls[0]["idempotency_key"] == "key-1"
    assert calls[0]["api_key"] == "sk_test_123"
    assert calls[0]["metadata"]["order_id"] == "order-1"


@pytest.mark.asyncio
async def test_create_intent_retries_connection_errors(monkeypatch):
    attempts = []

    def flaky_create(**kwargs):
        attempts.append(kwargs["idempotency_key"])
        if len(attempts) == 1:
            raise stripe.APIConnectionError("connection reset")
        return SimpleNamespace(id="pi_9", status="requires_payment_method", client_secret="secret")

    monkeypatch.setattr(stripe.PaymentIntent, "create", flaky_create)
    client = StripeClient(cfg=_settings())

    intent = await client.create_intent(_intent_request())

    assert intent.intent_id == "pi_9"
    # 重试沿用同一个幂等键
    assert attempts == ["key-1", "key-1"]


@pytest.mark.asyncio
async def test_create_intent_gives_up_after_retry_budget(monkeypatch):
    attempts = []

    def down(**kwargs):
        attempts.append(1)
        raise stripe.APIConnectionError("gateway down")

    monkeypatch.setattr(stripe.PaymentIntent, "create", down)
    client = StripeClient(cfg=_settings())

    with pytest.raises(PaymentRecoverableError):
        await client.create_intent(_intent_request())
    assert len(attempts) == client._retry_max + 1


@pytest.mark.asyncio
async def test_create_intent_does_not_retry_rejections(monkeypatch):
    attempts = []

    def reject(**kwargs):
        attempts.append(1)
        raise stripe.InvalidRequestError("Amount must be at least 30 pence", "amount")

    monkeypatch.setattr(stripe.PaymentIntent, "create", reject)
    client = StripeClient(cfg=_settings())

    with pytest.raises(PaymentProviderError) as ei:
        await client.create_intent(_intent_request())
    assert not isinstance(ei.value, PaymentRecoverableError)
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_create_intent_without_secret_key_fails_before_sdk_call(monkeypatch):
    monkeypatch.setattr(stripe.PaymentIntent, "create", lambda **kwargs: pytest.fail("SDK must not be called"))
    cfg = _settings()
    cfg.stripe.secret_key = None

    with pytest.raises(RuntimeError):
        await StripeClient(cfg=cfg).create_intent(_intent_request())


@pytest.mark.asyncio
async def test_create_refund_maps_status(monkeypatch):
    calls = []

    def fake_refund(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id="re_1", status="pending")

    monkeypatch.setattr(stripe.Refund, "create", fake_refund)
    client = StripeClient(cfg=_settings())

    refund = await client.create_refund(
        CreateRefund(
            refund_id="ref-1",
            payment_intent_id="pi_1",
            amount=1000,
            currency="GBP",
            reason="damaged item",
            idempotency_key="refund-key",
        )
    )

    assert refund.refund_id == "re_1"
    assert refund.status == "PENDING"
    assert calls[0]["payment_intent"] == "pi_1"
    assert calls[0]["metadata"]["reason"] == "damaged item"
    assert calls[0]["idempotency_key"] == "refund-key"
