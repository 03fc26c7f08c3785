"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.repositories.invoice_repository import SQLAlchemyInvoiceRepository
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository
from infrastructure.repositories.payment_repository import (
    SQLAlchemyPaymentRepository,
    SQLAlchemyRefundRepository,
)
from infrastructure.repositories.pricing_repository import (
    SQLAlchemyCouponRepository,
    SQLAlchemyShippingRateRepository,
    SQLAlchemyTaxRuleRepository,
)
from infrastructure.repositories.shipment_repository import SQLAlchemyShipmentRepository


_REPOSITORIES = (
    "orders",
    "payments",
    "refunds",
    "invoices",
    "coupons",
    "tax_rules",
    "shipping_rates",
    "shipments",
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self._committed = False
        session = self.session
        self.orders = SQLAlchemyOrderRepository(session)
        self.payments = SQLAlchemyPaymentRepository(session)
        self.refunds = SQLAlchemyRefundRepository(session)
        self.invoices = SQLAlchemyInvoiceRepository(session)
        self.coupons = SQLAlchemyCouponRepository(session)
        self.tax_rules = SQLAlchemyTaxRuleRepository(session)
        self.shipping_rates = SQLAlchemyShippingRateRepository(session)
        self.shipments = SQLAlchemyShipmentRepository(session)
        # 仅在非只读模式下显式开启事务
        if not self._readonly and not session.in_transaction():
            await session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            for name in _REPOSITORIES:
                self.__dict__.pop(name, None)

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
