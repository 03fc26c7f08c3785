"""
Webhook 接收端点

原始请求体必须原样交给签名校验，不能先经过 JSON 解析。
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from api.dependencies import get_webhook_service
from application.dto import ReceivedDTO
from application.services.webhook_service import WebhookService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/stripe", summary="Stripe webhook", response_model=ReceivedDTO)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    service: WebhookService = Depends(get_webhook_service),
):
    payload = await request.body()
    return await service.handle(payload, stripe_signature)
