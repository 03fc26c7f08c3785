"""发货记录模型"""
from sqlalchemy import Column, String, DateTime, ForeignKey

from .base import Base, utcnow


class ShipmentModel(Base):
    __tablename__ = "shipments"

    id = Column(String(36), primary_key=True)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rate_id = Column(String(36), nullable=True, comment="运费规则ID")
    status = Column(String(20), nullable=False, default="PENDING", comment="PENDING/SHIPPED/DELIVERED/CANCELLED")
    carrier = Column(String(100), nullable=True, comment="承运商")
    tracking_number = Column(String(100), nullable=True, index=True, comment="运单号")
    estimated_delivery = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
