"""
结账编排 - 定价、下单、发起支付、客户端确认

initiate 在同一个事务里完成：定价 → 写订单/订单项 → 调用网关创建 PaymentIntent
→ 写 PENDING 支付记录。网关失败时整个事务回滚，不会留下无支付意图的订单。
"""
from __future__ import annotations

from typing import Callable, Optional, Sequence

from application.dtos.checkout import (
    ApplyCouponRequest,
    ApplyCouponResponse,
    CheckoutConfirmRequest,
    CheckoutInitiateRequest,
    CheckoutInitiateResponse,
    CheckoutSummaryRequest,
    LineItemIn,
    PriceBreakdownOut,
    ShippingAddressIn,
    TaxLineOut,
)
from application.dtos.orders import OrderOut
from application.ports.event_publisher import EventPublisher, publish_events
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import open_payment, settle_payment
from application.services.pricing_service import build_pricing_engine
from core.config import settings
from core.logging_config import get_logger
from domain.common.events import EventCollector, Topics
from domain.common.exceptions import (
    IllegalTransitionException,
    NotFoundException,
    UnprocessableException,
)
from domain.common.principal import Principal
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderItem, OrderStatus, ShippingAddress
from domain.order.state_machine import OrderStateMachine
from domain.payment.entity import PaymentStatus
from domain.pricing.engine import PriceBreakdown
from domain.pricing.resolvers import CouponValidator


logger = get_logger(__name__)


def _to_order_items(items: Sequence[LineItemIn]) -> list[OrderItem]:
    return [
        OrderItem(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            category=(item.category or settings.checkout.default_tax_category).upper(),
            name=item.name,
        )
        for item in items
    ]


def _breakdown_out(breakdown: PriceBreakdown, currency: str) -> PriceBreakdownOut:
    return PriceBreakdownOut(
        subtotal=breakdown.subtotal,
        tax_amount=breakdown.tax_amount,
        shipping_amount=breakdown.shipping_amount,
        discount_amount=breakdown.discount_amount,
        total_amount=breakdown.total_amount,
        currency=currency,
        coupon_code=breakdown.coupon_code,
        tax_lines=[TaxLineOut.model_validate(line) for line in breakdown.tax_lines],
    )


def _currency(value: Optional[str]) -> str:
    return (value or settings.checkout.default_currency).upper()


async def place_order(
    uow: AbstractUnitOfWork,
    *,
    user_id: str,
    items: Sequence[LineItemIn],
    address: ShippingAddressIn,
    shipping_rate_id: str,
    coupon_code: Optional[str],
    currency: str,
    events: EventCollector,
) -> Order:
    """定价并写入 PENDING/UNPAID 订单；优惠券使用次数在同一事务内条件递增"""
    order_items = _to_order_items(items)
    shipping_address = ShippingAddress(**address.model_dump())
    breakdown = await build_pricing_engine(uow).price(
        order_items,
        shipping_rate_id=shipping_rate_id,
        country=shipping_address.country,
        region=shipping_address.region,
        coupon_code=coupon_code,
    )
    order = Order.place(
        user_id=user_id,
        items=order_items,
        breakdown=breakdown,
        currency=currency,
        shipping_address=shipping_address,
        shipping_rate_id=shipping_rate_id,
        coupon_id=breakdown.coupon_id,
        coupon_code=breakdown.coupon_code,
    )
    if breakdown.coupon_id and not await uow.coupons.increment_usage(breakdown.coupon_id):
        raise UnprocessableException("Coupon usage limit reached", field="couponCode")
    order = await uow.orders.create(order)
    events.record(
        Topics.ORDER_CREATED,
        order.id,
        userId=order.user_id,
        totalAmount=order.total_amount,
        currency=order.currency,
        couponCode=order.coupon_code,
    )
    return order


class CheckoutService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        publisher: EventPublisher,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._publisher = publisher

    async def summary(self, req: CheckoutSummaryRequest) -> PriceBreakdownOut:
        """只读价格试算，不写库，不消耗优惠券"""
        async with self._uow_factory(readonly=True) as uow:
            breakdown = await build_pricing_engine(uow).price(
                _to_order_items(req.items),
                shipping_rate_id=req.shipping_rate_id,
                country=req.country.upper(),
                region=req.region,
                coupon_code=req.coupon_code,
            )
        return _breakdown_out(breakdown, _currency(req.currency))

    async def apply_coupon(self, req: ApplyCouponRequest) -> ApplyCouponResponse:
        async with self._uow_factory(readonly=True) as uow:
            applied = await CouponValidator(uow.coupons).validate(req.code, req.order_amount)
        return ApplyCouponResponse(
            coupon_id=applied.coupon_id,
            code=applied.code,
            discount_amount=applied.discount_amount,
        )

    async def initiate(self, principal: Principal, req: CheckoutInitiateRequest) -> CheckoutInitiateResponse:
        events = EventCollector()
        async with self._uow_factory() as uow:
            order = await place_order(
                uow,
                user_id=principal.user_id,
                items=req.items,
                address=req.shipping_address,
                shipping_rate_id=req.shipping_rate_id,
                coupon_code=req.coupon_code,
                currency=_currency(req.currency),
                events=events,
            )
            payment = await open_payment(uow, self._gateway, order)

        await publish_events(self._publisher, events.clear_events())
        logger.info(
            "checkout_initiated",
            order_id=order.id,
            payment_id=payment.id,
            user_id=principal.user_id,
            total_amount=order.total_amount,
            currency=order.currency,
        )
        return CheckoutInitiateResponse(
            order_id=order.id,
            payment_id=payment.id,
            payment_intent_id=payment.gateway_intent_id,
            client_secret=payment.client_secret,
            total_amount=order.total_amount,
            currency=order.currency,
        )

    async def confirm(self, principal: Principal, req: CheckoutConfirmRequest) -> OrderOut:
        """
        客户端确认支付完成

        与 webhook 共用条件写：先到的一方完成转换并开票，后到的一方是幂等空操作。
        """
        events = EventCollector()
        async with self._uow_factory() as uow:
            order = await uow.orders.get_by_id(req.order_id)
            if order is None:
                raise NotFoundException("Order", req.order_id)
            OrderStateMachine.authorize(order, principal)

            payment = await uow.payments.get_by_intent_id(req.payment_intent_id)
            if payment is None or payment.order_id != order.id:
                raise UnprocessableException(
                    "Payment intent does not belong to this order",
                    field="paymentIntentId",
                    context={"order_id": order.id},
                )
            if order.status == OrderStatus.CANCELLED:
                raise IllegalTransitionException("order", order.status.value, OrderStatus.CONFIRMED.value)
            if order.status == OrderStatus.CONFIRMED:
                if payment.status != PaymentStatus.SUCCEEDED:
                    raise IllegalTransitionException("order", order.status.value, OrderStatus.CONFIRMED.value)
                logger.info("checkout_confirm_noop", order_id=order.id, payment_id=payment.id)
                return OrderOut.model_validate(order)

            # 客户端确认只能结算进行中的尝试；失败/取消后的迟到成功只认 webhook
            if payment.status not in (PaymentStatus.PENDING, PaymentStatus.SUCCEEDED):
                raise UnprocessableException(
                    f"Payment attempt is {payment.status.value} and cannot be confirmed",
                    field="paymentIntentId",
                    context={"order_id": order.id, "payment_id": payment.id},
                )
            order = await settle_payment(
                uow, payment, events, source="confirm", payment_from=(PaymentStatus.PENDING,)
            )

        await publish_events(self._publisher, events.clear_events())
        return OrderOut.model_validate(order)
