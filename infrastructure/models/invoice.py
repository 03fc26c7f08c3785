"""
发票数据库模型
"""
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, JSON, ForeignKey, Index
from datetime import datetime, timezone

from .base import Base


class InvoiceModel(Base):
    """发票表 - 订单确认且已支付时的财务快照"""
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True)
    # 每个订单至多一张发票
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="订单ID"
    )
    user_id = Column(String(64), nullable=False, index=True, comment="用户ID")
    invoice_number = Column(String(50), nullable=False, unique=True, comment="发票号 INV-<year>-<seq>")
    status = Column(String(20), nullable=False, default="ISSUED", index=True, comment="ISSUED/VOID")

    currency = Column(String(3), nullable=False)
    subtotal = Column(BigInteger, nullable=False)
    tax_amount = Column(BigInteger, nullable=False)
    shipping_amount = Column(BigInteger, nullable=False)
    discount_amount = Column(BigInteger, nullable=False)
    total_amount = Column(BigInteger, nullable=False)

    billing_address = Column(JSON, nullable=True, comment="账单地址快照")
    line_items = Column(JSON, nullable=True, comment="订单项快照")

    issued_at = Column(DateTime(timezone=True), nullable=False, comment="开具时间")
    due_at = Column(DateTime(timezone=True), nullable=True, comment="到期时间")
    voided_at = Column(DateTime(timezone=True), nullable=True, comment="作废时间")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_invoices_status_issued_at", "status", "issued_at"),
    )

    def __repr__(self):
        return f"<InvoiceModel(id='{self.id}', number='{self.invoice_number}', status='{self.status}')>"


class InvoiceSequenceModel(Base):
    """按年份递增的发票序号计数器"""
    __tablename__ = "invoice_sequences"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)
