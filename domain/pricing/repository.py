"""Repository abstractions for pricing reference data."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .entity import Coupon, ShippingRate, TaxRule


class CouponRepository(ABC):

    @abstractmethod
    async def create(self, coupon: Coupon) -> Coupon:
        ...

    @abstractmethod
    async def update(self, coupon: Coupon) -> Coupon:
        ...

    @abstractmethod
    async def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        ...

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Coupon]:
        ...

    @abstractmethod
    async def list(self, *, skip: int = 0, limit: int = 20) -> list[Coupon]:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    @abstractmethod
    async def soft_delete(self, coupon_id: str) -> bool:
        ...

    @abstractmethod
    async def increment_usage(self, coupon_id: str) -> bool:
        """条件递增使用次数（usage_count < usage_limit），额度用尽返回 False"""
        ...


class TaxRuleRepository(ABC):

    @abstractmethod
    async def create(self, rule: TaxRule) -> TaxRule:
        ...

    @abstractmethod
    async def update(self, rule: TaxRule) -> TaxRule:
        ...

    @abstractmethod
    async def get_by_id(self, rule_id: str) -> Optional[TaxRule]:
        ...

    @abstractmethod
    async def list(
        self,
        *,
        country: Optional[str] = None,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> list[TaxRule]:
        ...

    @abstractmethod
    async def count(self, *, country: Optional[str] = None, is_active: Optional[bool] = None) -> int:
        ...

    @abstractmethod
    async def find_active(self, country: str, category: str) -> list[TaxRule]:
        """某国家 + 类目下所有启用的规则（含地区规则与默认规则）"""
        ...

    @abstractmethod
    async def soft_delete(self, rule_id: str) -> bool:
        ...


class ShippingRateRepository(ABC):

    @abstractmethod
    async def create(self, rate: ShippingRate) -> ShippingRate:
        ...

    @abstractmethod
    async def update(self, rate: ShippingRate) -> ShippingRate:
        ...

    @abstractmethod
    async def get_by_id(self, rate_id: str) -> Optional[ShippingRate]:
        ...

    @abstractmethod
    async def list_active(self) -> list[ShippingRate]:
        ...
