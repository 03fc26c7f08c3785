"""Repository abstraction for shipments."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from .entity import Shipment, ShipmentStatus


class ShipmentRepository(ABC):

    @abstractmethod
    async def create(self, shipment: Shipment) -> Shipment:
        ...

    @abstractmethod
    async def get_by_id(self, shipment_id: str) -> Optional[Shipment]:
        ...

    @abstractmethod
    async def list_by_order(self, order_id: str) -> list[Shipment]:
        ...

    @abstractmethod
    async def update(self, shipment: Shipment, *, expected: Iterable[ShipmentStatus]) -> bool:
        """保存跟踪信息与状态；仅当数据库中的状态仍属于 expected 时生效"""
        ...
