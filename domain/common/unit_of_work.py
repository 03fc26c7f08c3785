"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.invoice.repository import InvoiceRepository
from domain.order.repository import OrderRepository
from domain.payment.repository import PaymentRepository, RefundRepository
from domain.pricing.repository import CouponRepository, ShippingRateRepository, TaxRuleRepository
from domain.shipping.repository import ShipmentRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象

    订单聚合（订单项、支付、退款、发货、发票）的所有变更都在同一个事务内完成。
    """

    orders: OrderRepository
    payments: PaymentRepository
    refunds: RefundRepository
    invoices: InvoiceRepository
    coupons: CouponRepository
    tax_rules: TaxRuleRepository
    shipping_rates: ShippingRateRepository
    shipments: ShipmentRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
