"""Repository abstraction for invoices."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .entity import Invoice, InvoiceStatus


class InvoiceRepository(ABC):

    @abstractmethod
    async def create(self, invoice: Invoice) -> Invoice:
        ...

    @abstractmethod
    async def get_by_id(self, invoice_id: str) -> Optional[Invoice]:
        ...

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[Invoice]:
        ...

    @abstractmethod
    async def list(self, *, status: Optional[InvoiceStatus] = None, skip: int = 0, limit: int = 20) -> list[Invoice]:
        ...

    @abstractmethod
    async def count(self, *, status: Optional[InvoiceStatus] = None) -> int:
        ...

    @abstractmethod
    async def next_sequence(self, year: int) -> int:
        """原子地获取某年的下一个发票序号"""
        ...

    @abstractmethod
    async def void(self, invoice_id: str) -> bool:
        """条件更新 ISSUED → VOID；已作废时返回 False"""
        ...
