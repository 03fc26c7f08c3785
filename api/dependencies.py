"""
API依赖项 - 认证、数据库句柄与应用服务装配
"""
from dataclasses import dataclass
from typing import Callable, Optional

import jwt
import structlog
from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.ports.event_publisher import EventPublisher
from application.ports.payment_gateway import PaymentGateway
from application.services.checkout_service import CheckoutService
from application.services.invoice_service import InvoiceService
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.pricing_service import CouponService, ShippingRateService, TaxRuleService
from application.services.refund_service import RefundService
from application.services.shipping_service import ShipmentService
from application.services.webhook_service import WebhookService
from core.config import settings
from domain.common.exceptions import UnauthorizedException
from domain.common.principal import Principal
from infrastructure.database import Database
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


def decode_principal(token: str) -> Principal:
    """校验 JWT 并转换为调用者身份（sub = 用户ID，role = ADMIN / CUSTOMER）"""
    try:
        claims = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"require": ["sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise UnauthorizedException("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise UnauthorizedException("Invalid authentication credentials") from exc
    return Principal(user_id=str(claims["sub"]), role=str(claims.get("role") or "CUSTOMER").upper())


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException()
    principal = decode_principal(credentials.credentials)
    structlog.contextvars.bind_contextvars(user_id=principal.user_id)
    return principal


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    principal.ensure_admin()
    return principal


@dataclass
class PageParams:
    page: int
    size: int


def get_page_params(
    page: int = Query(1, ge=1, description="页码"),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="每页数量"),
) -> PageParams:
    return PageParams(page=page, size=size)


# ---- infrastructure handles ----

def get_database(request: Request) -> Database:
    return request.app.state.database


def get_uow_factory(database: Database = Depends(get_database)) -> Callable[..., SQLAlchemyUnitOfWork]:
    def factory(**kwargs) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(database.session_factory, **kwargs)

    return factory


def get_gateway(request: Request) -> PaymentGateway:
    # 进程内复用同一个网关客户端
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        gateway = get_payment_gateway()
        request.app.state.payment_gateway = gateway
    return gateway


def get_event_publisher(request: Request) -> EventPublisher:
    return request.app.state.event_publisher


# ---- application services ----

def get_checkout_service(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> CheckoutService:
    return CheckoutService(uow_factory, gateway, publisher)


def get_order_service(
    uow_factory=Depends(get_uow_factory),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> OrderService:
    return OrderService(uow_factory, publisher)


def get_payment_service(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
) -> PaymentService:
    return PaymentService(uow_factory, gateway)


def get_refund_service(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> RefundService:
    return RefundService(uow_factory, gateway, publisher)


def get_webhook_service(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> WebhookService:
    return WebhookService(uow_factory, gateway, publisher)


def get_invoice_service(
    uow_factory=Depends(get_uow_factory),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> InvoiceService:
    return InvoiceService(uow_factory, publisher)


def get_coupon_service(uow_factory=Depends(get_uow_factory)) -> CouponService:
    return CouponService(uow_factory)


def get_tax_rule_service(uow_factory=Depends(get_uow_factory)) -> TaxRuleService:
    return TaxRuleService(uow_factory)


def get_shipping_rate_service(uow_factory=Depends(get_uow_factory)) -> ShippingRateService:
    return ShippingRateService(uow_factory)


def get_shipment_service(uow_factory=Depends(get_uow_factory)) -> ShipmentService:
    return ShipmentService(uow_factory)
