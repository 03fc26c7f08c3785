"""
支付仓储接口 - 定义支付/退款数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Iterable, Optional, List

from .entity import Payment, Refund, PaymentStatus, RefundStatus


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据ID获取支付；for_update=True 时对该行加锁直到事务结束"""
        pass

    @abstractmethod
    async def get_by_intent_id(self, gateway_intent_id: str) -> Optional[Payment]:
        """根据网关 PaymentIntent ID 获取支付"""
        pass

    @abstractmethod
    async def list_by_order(self, order_id: str) -> List[Payment]:
        """获取订单的全部支付尝试（按创建时间升序）"""
        pass

    @abstractmethod
    async def list(
        self,
        *,
        status: Optional[PaymentStatus] = None,
        user_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Payment]:
        pass

    @abstractmethod
    async def count(self, *, status: Optional[PaymentStatus] = None, user_id: Optional[str] = None) -> int:
        pass

    @abstractmethod
    async def transition_status(
        self,
        payment_id: str,
        *,
        expected: Iterable[PaymentStatus],
        target: PaymentStatus,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """条件更新支付状态；仅当当前状态属于 expected 时生效"""
        pass

    @abstractmethod
    async def cancel_pending_for_order(self, order_id: str) -> int:
        """作废订单下所有 PENDING 支付，返回受影响行数"""
        pass


class RefundRepository(ABC):
    """退款仓储抽象接口"""

    @abstractmethod
    async def create(self, refund: Refund) -> Refund:
        pass

    @abstractmethod
    async def get_by_id(self, refund_id: str) -> Optional[Refund]:
        pass

    @abstractmethod
    async def get_by_gateway_refund_id(self, gateway_refund_id: str) -> Optional[Refund]:
        pass

    @abstractmethod
    async def list_by_payment(self, payment_id: str) -> List[Refund]:
        pass

    @abstractmethod
    async def list(self, *, status: Optional[RefundStatus] = None, skip: int = 0, limit: int = 20) -> List[Refund]:
        pass

    @abstractmethod
    async def count(self, *, status: Optional[RefundStatus] = None) -> int:
        pass

    @abstractmethod
    async def committed_amount(self, payment_id: str) -> int:
        """SUCCEEDED + PENDING 退款总额"""
        pass

    @abstractmethod
    async def transition_status(
        self,
        refund_id: str,
        *,
        expected: Iterable[RefundStatus],
        target: RefundStatus,
        failure_reason: Optional[str] = None,
    ) -> bool:
        pass
