"""
退款处理 - 管理员发起，网关异步结算

创建时锁定支付行后再计算已占用额度（SUCCEEDED + PENDING），
并发的两次退款无法同时通过额度校验。退款只由 webhook 确认为 SUCCEEDED。
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.orders import RefundCreateRequest, RefundOut
from application.dtos.payments import CreateRefund
from application.ports.event_publisher import EventPublisher, publish_events
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import idempotency_key
from core.logging_config import get_logger
from domain.common.events import EventCollector, Topics
from domain.common.exceptions import BusinessException, NotFoundException, UnprocessableException
from domain.common.principal import Principal
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Refund, RefundStatus
from domain.payment.state_machine import PaymentStateMachine


logger = get_logger(__name__)


class RefundService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        publisher: EventPublisher,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._publisher = publisher

    async def create(self, principal: Principal, req: RefundCreateRequest) -> RefundOut:
        principal.ensure_admin()
        events = EventCollector()
        async with self._uow_factory() as uow:
            payment = await uow.payments.get_by_id(req.payment_id, for_update=True)
            if payment is None:
                raise NotFoundException("Payment", req.payment_id)
            committed = await uow.refunds.committed_amount(payment.id)
            PaymentStateMachine.ensure_refundable(payment, req.amount, committed)

            refund = Refund.request(payment, req.amount, req.reason)
            try:
                result = await self._gateway.create_refund(
                    CreateRefund(
                        refund_id=refund.id,
                        payment_intent_id=payment.gateway_intent_id,
                        amount=refund.amount,
                        currency=refund.currency,
                        reason=req.reason,
                        idempotency_key=idempotency_key("refund", payment.id, refund.id, refund.amount),
                        metadata={"order_id": payment.order_id, "payment_id": payment.id},
                    )
                )
            except BusinessException as exc:
                logger.warning("refund_gateway_failed", payment_id=payment.id, error=exc.message)
                raise
            except Exception as exc:
                logger.error("refund_gateway_failed", payment_id=payment.id, error=str(exc))
                raise UnprocessableException(f"Payment gateway error: {exc}") from exc

            refund.gateway_refund_id = result.refund_id
            refund = await uow.refunds.create(refund)
            events.record(
                Topics.REFUND_CREATED,
                refund.id,
                paymentId=payment.id,
                orderId=payment.order_id,
                amount=refund.amount,
                currency=refund.currency,
            )

        logger.info(
            "refund_requested",
            refund_id=refund.id,
            payment_id=refund.payment_id,
            gateway_refund_id=refund.gateway_refund_id,
            amount=refund.amount,
            by=principal.user_id,
        )
        await publish_events(self._publisher, events.clear_events())
        return RefundOut.model_validate(refund)

    async def list(
        self,
        principal: Principal,
        *,
        page: int,
        size: int,
        status: Optional[RefundStatus] = None,
    ) -> tuple[list[RefundOut], int]:
        principal.ensure_admin()
        async with self._uow_factory(readonly=True) as uow:
            refunds = await uow.refunds.list(status=status, skip=(page - 1) * size, limit=size)
            total = await uow.refunds.count(status=status)
        return [RefundOut.model_validate(r) for r in refunds], total

    async def _authorize_order(self, uow: AbstractUnitOfWork, principal: Principal, order_id: str) -> None:
        order = await uow.orders.get_by_id(order_id)
        if order is None:
            raise NotFoundException("Order", order_id)
        principal.ensure_owner_or_admin(order.user_id)

    async def get(self, principal: Principal, refund_id: str) -> RefundOut:
        async with self._uow_factory(readonly=True) as uow:
            refund = await uow.refunds.get_by_id(refund_id)
            if refund is None:
                raise NotFoundException("Refund", refund_id)
            await self._authorize_order(uow, principal, refund.order_id)
        return RefundOut.model_validate(refund)

    async def list_by_payment(self, principal: Principal, payment_id: str) -> list[RefundOut]:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payments.get_by_id(payment_id)
            if payment is None:
                raise NotFoundException("Payment", payment_id)
            await self._authorize_order(uow, principal, payment.order_id)
            refunds = await uow.refunds.list_by_payment(payment_id)
        return [RefundOut.model_validate(r) for r in refunds]
