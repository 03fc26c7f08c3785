"""
Gateway specific constants: event types and provider status mapping.
"""
from __future__ import annotations


class StripeEventType:
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    PAYMENT_INTENT_CANCELED = "payment_intent.canceled"
    CHARGE_REFUNDED = "charge.refunded"
    # 单个退款状态变化（新版 API 的 charge 事件不再内嵌 refunds 列表）
    CHARGE_REFUND_UPDATED = "charge.refund.updated"
    REFUND_UPDATED = "refund.updated"


# Provider→internal status mapping
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        # PaymentIntent.status
        "requires_payment_method": "PENDING",
        "requires_confirmation": "PENDING",
        "requires_action": "PENDING",
        "processing": "PENDING",
        "requires_capture": "PENDING",
        "succeeded": "SUCCEEDED",
        "canceled": "CANCELLED",
    },
    "stripe_refund": {
        # Refund.status
        "pending": "PENDING",
        "requires_action": "PENDING",
        "succeeded": "SUCCEEDED",
        "failed": "FAILED",
        "canceled": "FAILED",
    },
}
