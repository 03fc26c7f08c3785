"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, BigInteger, String, DateTime, Text,
    Index, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="订单ID（一个订单可有多次支付尝试）"
    )

    # 支付渠道信息
    provider = Column(String(50), nullable=False, default="stripe", comment="支付提供商")
    gateway_intent_id = Column(String(200), nullable=True, unique=True, comment="网关 PaymentIntent ID")
    method = Column(String(50), nullable=False, default="card", comment="支付方式")

    amount = Column(BigInteger, nullable=False, comment="支付金额（最小货币单位）")
    currency = Column(String(3), nullable=False, comment="货币代码 ISO-4217")

    status = Column(
        String(20),
        nullable=False,
        default="PENDING",
        index=True,
        comment="支付状态: PENDING/SUCCEEDED/FAILED/CANCELLED"
    )

    client_secret = Column(String(500), nullable=True, comment="客户端密钥（用于前端调用）")
    failure_reason = Column(Text, nullable=True, comment="失败原因")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    failed_at = Column(DateTime(timezone=True), nullable=True, comment="支付失败时间")

    refunds = relationship("RefundModel", back_populates="payment", lazy="select")

    __table_args__ = (
        Index("ix_payments_order_status", "order_id", "status"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id='{self.id}', order_id='{self.order_id}', "
            f"intent='{self.gateway_intent_id}', amount={self.amount}, status='{self.status}')>"
        )


class RefundModel(Base):
    """
    退款数据库模型

    退款通过支付归属订单聚合
    """
    __tablename__ = "refunds"

    id = Column(String(36), primary_key=True)
    payment_id = Column(
        String(36),
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="关联的支付ID"
    )
    order_id = Column(String(36), index=True, nullable=False, comment="订单ID（冗余，便于查询）")

    gateway_refund_id = Column(String(200), nullable=True, unique=True, comment="网关退款ID")

    amount = Column(BigInteger, nullable=False, comment="退款金额")
    currency = Column(String(3), nullable=False, comment="货币代码")

    status = Column(
        String(20),
        nullable=False,
        default="PENDING",
        index=True,
        comment="退款状态: PENDING/SUCCEEDED/FAILED"
    )

    reason = Column(Text, nullable=True, comment="退款原因")
    failure_reason = Column(Text, nullable=True, comment="失败原因")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    succeeded_at = Column(DateTime(timezone=True), nullable=True, comment="退款成功时间")

    payment = relationship("PaymentModel", back_populates="refunds")

    __table_args__ = (
        Index("ix_refunds_payment_status", "payment_id", "status"),
    )

    def __repr__(self):
        return (
            f"<RefundModel(id='{self.id}', payment_id='{self.payment_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
