"""Test doubles shared by the service and API tests."""
import itertools
import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from application.dtos.payments import (
    CreateIntent,
    CreateRefund,
    GatewayIntent,
    GatewayRefund,
    WebhookEvent,
)
from core.config import settings
from infrastructure.external.payments.exceptions import PaymentSignatureError


VALID_SIGNATURE = "t=1,v1=valid"


class FakeGateway:
    """In-process gateway: records requests and accepts one known signature."""

    provider = "stripe"

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.intents: list[CreateIntent] = []
        self.refunds: list[CreateRefund] = []
        self.fail_next: Optional[Exception] = None

    def _maybe_fail(self) -> None:
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc

    async def create_intent(self, req: CreateIntent) -> GatewayIntent:
        self._maybe_fail()
        self.intents.append(req)
        n = next(self._ids)
        return GatewayIntent(intent_id=f"pi_{n}", client_secret=f"pi_{n}_secret", status="PENDING")

    async def create_refund(self, req: CreateRefund) -> GatewayRefund:
        self._maybe_fail()
        self.refunds.append(req)
        return GatewayRefund(refund_id=f"re_{next(self._ids)}", status="PENDING")

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        if signature != VALID_SIGNATURE:
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider)
        body = json.loads(payload)
        return WebhookEvent(id=body["id"], type=body["type"], data=body["data"]["object"])


class RecordingPublisher:
    def __init__(self) -> None:
        self.messages: list[tuple[str, dict]] = []

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        self.messages.append((topic, payload))

    async def aclose(self) -> None:
        return None

    @property
    def topics(self) -> list[str]:
        return [topic for topic, _ in self.messages]


def stripe_event(event_type: str, obj: dict, event_id: Optional[str] = None) -> bytes:
    return json.dumps(
        {"id": event_id or f"evt_{uuid.uuid4().hex[:12]}", "type": event_type, "data": {"object": obj}}
    ).encode()


def make_token(user_id: str, role: str = "CUSTOMER", *, expires_in: int = 3600) -> str:
    claims = {
        "sub": user_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
