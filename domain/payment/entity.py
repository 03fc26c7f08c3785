"""
支付领域实体 - Payment / Refund

金额为最小货币单位整数；一个订单可以有多条支付记录（失败后重试），
其中至多一条处于 SUCCEEDED。
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from enum import Enum
import uuid

from domain.common.exceptions import DomainValidationException, IllegalTransitionException


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "PENDING"          # 待支付
    SUCCEEDED = "SUCCEEDED"      # 支付成功
    FAILED = "FAILED"            # 支付失败（订单可重试）
    CANCELLED = "CANCELLED"      # 订单取消时作废


class RefundStatus(str, Enum):
    """退款状态枚举"""
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


# 同一个 PaymentIntent 失败后客户可以换卡重试，所以 FAILED 仍可变为 SUCCEEDED；
# 本地作废（订单取消）后网关侧意图仍可能完成扣款，CANCELLED 也可变为 SUCCEEDED
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.SUCCEEDED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.SUCCEEDED}),
    PaymentStatus.SUCCEEDED: frozenset(),
    PaymentStatus.CANCELLED: frozenset({PaymentStatus.SUCCEEDED}),
}

REFUND_TRANSITIONS: dict[RefundStatus, frozenset[RefundStatus]] = {
    RefundStatus.PENDING: frozenset({RefundStatus.SUCCEEDED, RefundStatus.FAILED}),
    RefundStatus.SUCCEEDED: frozenset(),
    RefundStatus.FAILED: frozenset(),
}


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _validate_currency(currency: str) -> str:
    """业务规则：货币代码必须是3位字母"""
    if not currency or len(currency) != 3 or not currency.isalpha():
        raise DomainValidationException(f"Invalid currency code: {currency}", field="currency")
    return currency.upper()


@dataclass
class Payment:
    """
    支付记录 - 属于订单聚合

    业务规则：
    1. 金额必须大于0
    2. 状态转换遵循 PAYMENT_TRANSITIONS
    3. 只有成功的支付才能退款
    """

    id: str
    order_id: str
    gateway_intent_id: Optional[str]
    amount: int
    currency: str
    status: PaymentStatus
    method: str = "card"
    provider: str = "stripe"
    client_secret: Optional[str] = None
    failure_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise DomainValidationException(f"Payment amount must be greater than 0: {self.amount}", field="amount")
        self.currency = _validate_currency(self.currency)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)
        self.failed_at = _ensure_utc(self.failed_at)

    @classmethod
    def start(cls, *, order_id: str, amount: int, currency: str, provider: str = "stripe") -> "Payment":
        """新建一次支付尝试（网关意图 ID 在调用网关后回填）"""
        now = datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            order_id=order_id,
            gateway_intent_id=None,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
            provider=provider,
            created_at=now,
            updated_at=now,
        )

    def can_transition(self, target: PaymentStatus) -> bool:
        return target in PAYMENT_TRANSITIONS.get(self.status, frozenset())

    def mark_succeeded(self) -> None:
        if not self.can_transition(PaymentStatus.SUCCEEDED):
            raise IllegalTransitionException("payment", self.status.value, PaymentStatus.SUCCEEDED.value)
        self.status = PaymentStatus.SUCCEEDED
        self.paid_at = datetime.now(timezone.utc)
        self.updated_at = self.paid_at
        self.failure_reason = None

    def mark_failed(self, reason: Optional[str] = None) -> None:
        if not self.can_transition(PaymentStatus.FAILED):
            raise IllegalTransitionException("payment", self.status.value, PaymentStatus.FAILED.value)
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason
        self.failed_at = datetime.now(timezone.utc)
        self.updated_at = self.failed_at


@dataclass
class Refund:
    """
    退款实体 - 通过 Payment 归属订单聚合

    业务规则：
    1. 已成功 + 处理中的退款总额不能超过支付金额
    2. 创建时为 PENDING，只能由网关 webhook 确认为 SUCCEEDED
    """

    id: str
    payment_id: str
    order_id: str
    gateway_refund_id: Optional[str]
    amount: int
    currency: str
    status: RefundStatus
    reason: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    succeeded_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise DomainValidationException(f"Refund amount must be greater than 0: {self.amount}", field="amount")
        self.currency = _validate_currency(self.currency)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.succeeded_at = _ensure_utc(self.succeeded_at)

    @classmethod
    def request(cls, payment: Payment, amount: int, reason: Optional[str] = None) -> "Refund":
        now = datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            payment_id=payment.id,
            order_id=payment.order_id,
            gateway_refund_id=None,
            amount=amount,
            currency=payment.currency,
            status=RefundStatus.PENDING,
            reason=reason,
            created_at=now,
            updated_at=now,
        )

    @property
    def counts_against_bound(self) -> bool:
        """SUCCEEDED 与 PENDING 的退款都占用可退额度"""
        return self.status in (RefundStatus.SUCCEEDED, RefundStatus.PENDING)
