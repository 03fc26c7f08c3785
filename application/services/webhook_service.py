"""
Webhook 接入管道

1. 用原始请求体校验签名（失败 → 400，不做任何处理）
2. 未识别的事件类型直接确认（200）
3. 每个事件在一个事务内处理；所有状态变更都是条件写，重复/乱序投递是幂等空操作
4. 处理失败 → 500，由网关稍后重投
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from application.dto import ReceivedDTO
from application.dtos.payments import WebhookEvent
from application.ports.event_publisher import EventPublisher, publish_events
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import refresh_order_payment_status, settle_payment
from core.logging_config import get_logger
from domain.common.events import EventCollector, Topics
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus
from domain.order.state_machine import OrderStateMachine
from domain.payment.entity import Payment, PaymentStatus, Refund, RefundStatus
from domain.payment.state_machine import PaymentStateMachine
from shared.codes import ErrorKind
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL, StripeEventType


logger = get_logger(__name__)

Handler = Callable[[AbstractUnitOfWork, WebhookEvent, EventCollector], Awaitable[None]]


def _refund_status(provider_status: Optional[str]) -> Optional[RefundStatus]:
    mapped = PROVIDER_STATUS_TO_INTERNAL["stripe_refund"].get(provider_status or "")
    return RefundStatus(mapped) if mapped else None


class WebhookService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        publisher: EventPublisher,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._publisher = publisher
        self._handlers: dict[str, Handler] = {
            StripeEventType.PAYMENT_INTENT_SUCCEEDED: self._on_intent_succeeded,
            StripeEventType.PAYMENT_INTENT_FAILED: self._on_intent_failed,
            StripeEventType.PAYMENT_INTENT_CANCELED: self._on_intent_canceled,
            StripeEventType.CHARGE_REFUNDED: self._on_charge_refunded,
            StripeEventType.CHARGE_REFUND_UPDATED: self._on_refund_updated,
            StripeEventType.REFUND_UPDATED: self._on_refund_updated,
        }

    async def handle(self, payload: bytes, signature: Optional[str]) -> ReceivedDTO:
        event = self._gateway.verify_webhook(payload, signature)
        log = logger.bind(event_id=event.id, event_type=event.type, provider=event.provider)
        log.info("webhook_received")

        handler = self._handlers.get(event.type)
        if handler is None:
            log.info("webhook_ignored")
            return ReceivedDTO()

        events = EventCollector()
        try:
            async with self._uow_factory() as uow:
                await handler(uow, event, events)
        except BusinessException as exc:
            log.error("webhook_failed", error=exc.message, kind=exc.kind.value)
            # 业务异常同样以 500 返回，让网关重投
            raise BusinessException(
                "Webhook processing failed",
                kind=ErrorKind.INTERNAL,
                context={"event_id": event.id, "event_type": event.type},
            ) from exc
        except Exception:
            log.exception("webhook_failed")
            raise

        published = await publish_events(self._publisher, events.clear_events())
        log.info("webhook_processed", events_published=published)
        return ReceivedDTO()

    async def _payment_for_intent(self, uow: AbstractUnitOfWork, event: WebhookEvent) -> Optional[Payment]:
        intent_id = event.data.get("id")
        payment = await uow.payments.get_by_intent_id(intent_id) if intent_id else None
        if payment is None:
            # 其他系统创建的意图或本地已回滚的意图
            logger.info("webhook_unknown_intent", event_id=event.id, intent_id=intent_id)
        return payment

    # ---- payment_intent.* ----

    async def _on_intent_succeeded(self, uow: AbstractUnitOfWork, event: WebhookEvent, events: EventCollector) -> None:
        payment = await self._payment_for_intent(uow, event)
        if payment is None:
            return
        await settle_payment(uow, payment, events, source="webhook")

    async def _on_intent_failed(self, uow: AbstractUnitOfWork, event: WebhookEvent, events: EventCollector) -> None:
        payment = await self._payment_for_intent(uow, event)
        if payment is None:
            return
        error = event.data.get("last_payment_error") or {}
        reason = error.get("message") or error.get("code")
        won = await uow.payments.transition_status(
            payment.id,
            expected=PaymentStateMachine.allowed_from(PaymentStatus.FAILED),
            target=PaymentStatus.FAILED,
            failure_reason=reason,
        )
        if not won:
            logger.info("webhook_duplicate", event_id=event.id, payment_id=payment.id)
            return
        # 订单保持 PENDING，客户可以重试；支付状态按最近一次尝试推导，已支付的订单不回退
        await refresh_order_payment_status(uow, payment.order_id)
        events.record(
            Topics.PAYMENT_FAILED,
            payment.id,
            orderId=payment.order_id,
            reason=reason,
        )
        logger.info(
            "payment_status_changed",
            payment_id=payment.id,
            order_id=payment.order_id,
            status=PaymentStatus.FAILED.value,
            source="webhook",
        )

    async def _on_intent_canceled(self, uow: AbstractUnitOfWork, event: WebhookEvent, events: EventCollector) -> None:
        payment = await self._payment_for_intent(uow, event)
        if payment is None:
            return
        await uow.payments.transition_status(
            payment.id,
            expected=PaymentStateMachine.allowed_from(PaymentStatus.CANCELLED),
            target=PaymentStatus.CANCELLED,
        )
        reason = event.data.get("cancellation_reason") or StripeEventType.PAYMENT_INTENT_CANCELED
        won = await uow.orders.transition_status(
            payment.order_id,
            expected=OrderStateMachine.allowed_from(OrderStatus.CANCELLED),
            target=OrderStatus.CANCELLED,
            cancel_reason=reason,
        )
        if not won:
            logger.info("webhook_duplicate", event_id=event.id, order_id=payment.order_id)
            return
        await uow.payments.cancel_pending_for_order(payment.order_id)
        events.record(Topics.ORDER_CANCELLED, payment.order_id, reason=reason)
        logger.info("order_cancelled", order_id=payment.order_id, reason=reason, source="webhook")

    # ---- refunds ----

    async def _on_charge_refunded(self, uow: AbstractUnitOfWork, event: WebhookEvent, events: EventCollector) -> None:
        charge = event.data
        refunds = (charge.get("refunds") or {}).get("data") or []
        if not refunds:
            logger.info("webhook_charge_without_refunds", event_id=event.id, charge_id=charge.get("id"))
        for refund_obj in refunds:
            await self._apply_refund(uow, refund_obj, events, intent_id=charge.get("payment_intent"))

    async def _on_refund_updated(self, uow: AbstractUnitOfWork, event: WebhookEvent, events: EventCollector) -> None:
        await self._apply_refund(uow, event.data, events)

    async def _lock_payment(
        self,
        uow: AbstractUnitOfWork,
        gateway_refund_id: Optional[str],
        intent_id: Optional[str],
    ) -> Optional[Payment]:
        payment = await uow.payments.get_by_intent_id(intent_id) if intent_id else None
        if payment is None and gateway_refund_id:
            known = await uow.refunds.get_by_gateway_refund_id(gateway_refund_id)
            if known is not None:
                payment = await uow.payments.get_by_id(known.payment_id)
        if payment is None:
            return None
        # 先锁支付行再查退款，和管理员创建退款的路径串行化
        return await uow.payments.get_by_id(payment.id, for_update=True)

    async def _apply_refund(
        self,
        uow: AbstractUnitOfWork,
        refund_obj: dict[str, Any],
        events: EventCollector,
        *,
        intent_id: Optional[str] = None,
    ) -> None:
        gateway_refund_id = refund_obj.get("id")
        status = _refund_status(refund_obj.get("status"))
        payment = await self._lock_payment(uow, gateway_refund_id, refund_obj.get("payment_intent") or intent_id)
        if payment is None:
            logger.info("webhook_refund_unknown_payment", gateway_refund_id=gateway_refund_id)
            return

        refund = await uow.refunds.get_by_gateway_refund_id(gateway_refund_id) if gateway_refund_id else None
        if refund is None:
            await self._record_external_refund(uow, payment, refund_obj, status, events)
            return

        if status not in (RefundStatus.SUCCEEDED, RefundStatus.FAILED) or refund.status == status:
            logger.info("webhook_duplicate", refund_id=refund.id, status=refund.status.value)
            return
        won = await uow.refunds.transition_status(
            refund.id,
            expected=PaymentStateMachine.refund_allowed_from(status),
            target=status,
            failure_reason=refund_obj.get("failure_reason"),
        )
        if not won:
            logger.warning(
                "webhook_refund_transition_rejected",
                refund_id=refund.id,
                current=refund.status.value,
                target=status.value,
            )
            return
        if status == RefundStatus.SUCCEEDED:
            events.record(
                Topics.REFUND_SUCCEEDED,
                refund.id,
                paymentId=payment.id,
                orderId=payment.order_id,
                amount=refund.amount,
            )
        logger.info("refund_settled", refund_id=refund.id, payment_id=payment.id, status=status.value)

    async def _record_external_refund(
        self,
        uow: AbstractUnitOfWork,
        payment: Payment,
        refund_obj: dict[str, Any],
        status: Optional[RefundStatus],
        events: EventCollector,
    ) -> None:
        """网关侧直接发起（或先于本地记录到达）的退款；只接收已成功且不超额的"""
        gateway_refund_id = refund_obj.get("id")
        amount = int(refund_obj.get("amount") or 0)
        if status != RefundStatus.SUCCEEDED:
            logger.info(
                "webhook_refund_unknown_skipped",
                gateway_refund_id=gateway_refund_id,
                status=refund_obj.get("status"),
            )
            return
        committed = await uow.refunds.committed_amount(payment.id)
        if amount <= 0 or committed + amount > payment.amount:
            logger.warning(
                "webhook_refund_exceeds_bound",
                gateway_refund_id=gateway_refund_id,
                payment_id=payment.id,
                amount=amount,
                committed=committed,
            )
            return

        refund = Refund.request(payment, amount, (refund_obj.get("metadata") or {}).get("reason"))
        refund.gateway_refund_id = gateway_refund_id
        refund.status = RefundStatus.SUCCEEDED
        refund.succeeded_at = datetime.now(timezone.utc)
        refund = await uow.refunds.create(refund)
        events.record(
            Topics.REFUND_SUCCEEDED,
            refund.id,
            paymentId=payment.id,
            orderId=payment.order_id,
            amount=refund.amount,
        )
        logger.info(
            "refund_settled",
            refund_id=refund.id,
            payment_id=payment.id,
            gateway_refund_id=gateway_refund_id,
            created=True,
        )
