"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Text, JSON,
    Index, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True, comment="下单用户ID")

    status = Column(String(20), nullable=False, default="PENDING", index=True, comment="订单状态: PENDING/CONFIRMED/CANCELLED")
    payment_status = Column(String(20), nullable=False, default="UNPAID", comment="支付状态: UNPAID/PAID/FAILED")

    # 金额（最小货币单位）
    subtotal = Column(BigInteger, nullable=False, comment="小计")
    tax_amount = Column(BigInteger, nullable=False, default=0, comment="税额")
    shipping_amount = Column(BigInteger, nullable=False, default=0, comment="运费")
    discount_amount = Column(BigInteger, nullable=False, default=0, comment="折扣")
    total_amount = Column(BigInteger, nullable=False, comment="应付总额")
    currency = Column(String(3), nullable=False, comment="货币代码 ISO-4217")

    shipping_address = Column(JSON, nullable=False, comment="收货地址快照")
    shipping_rate_id = Column(String(36), nullable=True, comment="运费规则ID")
    coupon_id = Column(String(36), nullable=True, comment="优惠券ID")
    coupon_code = Column(String(50), nullable=True, comment="优惠码")
    cancel_reason = Column(Text, nullable=True, comment="取消原因")

    # 时间戳
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
    confirmed_at = Column(DateTime(timezone=True), nullable=True, comment="确认时间")
    cancelled_at = Column(DateTime(timezone=True), nullable=True, comment="取消时间")
    deleted_at = Column(DateTime(timezone=True), nullable=True, comment="软删除时间")

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
    )

    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
        Index("ix_orders_status_created_at", "status", "created_at"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id='{self.id}', user_id='{self.user_id}', status='{self.status}', "
            f"payment_status='{self.payment_status}', total_amount={self.total_amount})>"
        )


class OrderItemModel(Base):
    """订单项 - 创建后不可变"""
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="订单ID"
    )
    position = Column(Integer, nullable=False, default=0, comment="行号")
    product_id = Column(String(64), nullable=False, comment="商品ID")
    name = Column(String(255), nullable=True, comment="商品名称快照")
    category = Column(String(50), nullable=False, default="GENERAL", comment="税务类目")
    quantity = Column(Integer, nullable=False, comment="数量")
    unit_price = Column(BigInteger, nullable=False, comment="单价")
    total_price = Column(BigInteger, nullable=False, comment="行总价")

    order = relationship("OrderModel", back_populates="items")
