"""
定价参考数据模型：优惠券、税率规则、运费规则
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Boolean, Numeric, JSON, Text, Index
)

from .base import Base, utcnow


class CouponModel(Base):
    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True)
    # 唯一性在仓储层针对未删除记录校验
    code = Column(String(50), nullable=False, index=True, comment="优惠码（大写）")
    type = Column(String(20), nullable=False, comment="PERCENTAGE/FIXED")
    value = Column(BigInteger, nullable=False, comment="百分比或固定金额")
    status = Column(String(20), nullable=False, default="ACTIVE", comment="ACTIVE/INACTIVE")
    min_order_amount = Column(BigInteger, nullable=True, comment="最低订单金额")
    max_discount_amount = Column(BigInteger, nullable=True, comment="最高折扣金额")
    usage_limit = Column(Integer, nullable=True, comment="可用次数上限")
    usage_count = Column(Integer, nullable=False, default=0, comment="已用次数")
    expires_at = Column(DateTime(timezone=True), nullable=True, comment="过期时间")
    description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True, comment="软删除时间")


class TaxRuleModel(Base):
    __tablename__ = "tax_rules"

    id = Column(String(36), primary_key=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False, comment="PERCENTAGE/FIXED")
    rate = Column(Numeric(precision=12, scale=4), nullable=False, comment="百分比或固定税额")
    country = Column(String(2), nullable=False, comment="ISO-3166 alpha-2")
    region = Column(String(100), nullable=True, comment="地区（为空表示国家级规则）")
    category = Column(String(50), nullable=False, default="GENERAL", comment="商品税务类目")
    is_default = Column(Boolean, nullable=False, default=False, comment="是否为国家级默认规则")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_tax_rules_lookup", "country", "category", "is_active"),
    )


class ShippingRateModel(Base):
    __tablename__ = "shipping_rates"

    id = Column(String(36), primary_key=True)
    name = Column(String(100), nullable=False)
    method = Column(String(50), nullable=False, comment="STANDARD/EXPRESS/...")
    price = Column(BigInteger, nullable=False, comment="运费")
    free_threshold = Column(BigInteger, nullable=True, comment="包邮门槛")
    countries = Column(JSON, nullable=False, default=list, comment="可配送国家列表")
    estimated_days = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
