"""create_order_payment_tables

Revision ID: 3b9e4c1a7d20
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b9e4c1a7d20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
    ]


def upgrade() -> None:
    # Reference data
    op.create_table(
        'coupons',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False, comment='优惠码（大写）'),
        sa.Column('type', sa.String(length=20), nullable=False, comment='PERCENTAGE/FIXED'),
        sa.Column('value', sa.BigInteger(), nullable=False, comment='百分比或固定金额'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE', comment='ACTIVE/INACTIVE'),
        sa.Column('min_order_amount', sa.BigInteger(), nullable=True, comment='最低订单金额'),
        sa.Column('max_discount_amount', sa.BigInteger(), nullable=True, comment='最高折扣金额'),
        sa.Column('usage_limit', sa.Integer(), nullable=True, comment='可用次数上限'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0', comment='已用次数'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True, comment='过期时间'),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True, comment='软删除时间'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_coupons_code', 'coupons', ['code'], unique=False)

    op.create_table(
        'tax_rules',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, comment='PERCENTAGE/FIXED'),
        sa.Column('rate', sa.Numeric(precision=12, scale=4), nullable=False, comment='百分比或固定税额'),
        sa.Column('country', sa.String(length=2), nullable=False, comment='ISO-3166 alpha-2'),
        sa.Column('region', sa.String(length=100), nullable=True, comment='地区（为空表示国家级规则）'),
        sa.Column('category', sa.String(length=50), nullable=False, server_default='GENERAL', comment='商品税务类目'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='false', comment='是否为国家级默认规则'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tax_rules_lookup', 'tax_rules', ['country', 'category', 'is_active'], unique=False)

    op.create_table(
        'shipping_rates',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('method', sa.String(length=50), nullable=False, comment='STANDARD/EXPRESS/...'),
        sa.Column('price', sa.BigInteger(), nullable=False, comment='运费'),
        sa.Column('free_threshold', sa.BigInteger(), nullable=True, comment='包邮门槛'),
        sa.Column('countries', sa.JSON(), nullable=False, comment='可配送国家列表'),
        sa.Column('estimated_days', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # Orders
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False, comment='下单用户ID'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING', comment='订单状态: PENDING/CONFIRMED/CANCELLED'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='UNPAID', comment='支付状态: UNPAID/PAID/FAILED'),
        sa.Column('subtotal', sa.BigInteger(), nullable=False, comment='小计'),
        sa.Column('tax_amount', sa.BigInteger(), nullable=False, server_default='0', comment='税额'),
        sa.Column('shipping_amount', sa.BigInteger(), nullable=False, server_default='0', comment='运费'),
        sa.Column('discount_amount', sa.BigInteger(), nullable=False, server_default='0', comment='折扣'),
        sa.Column('total_amount', sa.BigInteger(), nullable=False, comment='应付总额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码 ISO-4217'),
        sa.Column('shipping_address', sa.JSON(), nullable=False, comment='收货地址快照'),
        sa.Column('shipping_rate_id', sa.String(length=36), nullable=True, comment='运费规则ID'),
        sa.Column('coupon_id', sa.String(length=36), nullable=True, comment='优惠券ID'),
        sa.Column('coupon_code', sa.String(length=50), nullable=True, comment='优惠码'),
        sa.Column('cancel_reason', sa.Text(), nullable=True, comment='取消原因'),
        *_timestamps(),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True, comment='确认时间'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True, comment='取消时间'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True, comment='软删除时间'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_user_status', 'orders', ['user_id', 'status'], unique=False)
    op.create_index('ix_orders_status_created_at', 'orders', ['status', 'created_at'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False, comment='订单ID'),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0', comment='行号'),
        sa.Column('product_id', sa.String(length=64), nullable=False, comment='商品ID'),
        sa.Column('name', sa.String(length=255), nullable=True, comment='商品名称快照'),
        sa.Column('category', sa.String(length=50), nullable=False, server_default='GENERAL', comment='税务类目'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='数量'),
        sa.Column('unit_price', sa.BigInteger(), nullable=False, comment='单价'),
        sa.Column('total_price', sa.BigInteger(), nullable=False, comment='行总价'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'], unique=False)

    # Payments / refunds
    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False, comment='订单ID（一个订单可有多次支付尝试）'),
        sa.Column('provider', sa.String(length=50), nullable=False, server_default='stripe', comment='支付提供商'),
        sa.Column('gateway_intent_id', sa.String(length=200), nullable=True, comment='网关 PaymentIntent ID'),
        sa.Column('method', sa.String(length=50), nullable=False, server_default='card', comment='支付方式'),
        sa.Column('amount', sa.BigInteger(), nullable=False, comment='支付金额（最小货币单位）'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码 ISO-4217'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING', comment='支付状态: PENDING/SUCCEEDED/FAILED/CANCELLED'),
        sa.Column('client_secret', sa.String(length=500), nullable=True, comment='客户端密钥（用于前端调用）'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败原因'),
        *_timestamps(),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='支付完成时间'),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True, comment='支付失败时间'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gateway_intent_id', name='uq_payments_gateway_intent_id'),
    )
    op.create_index('ix_payments_order_id', 'payments', ['order_id'], unique=False)
    op.create_index('ix_payments_status', 'payments', ['status'], unique=False)
    op.create_index('ix_payments_created_at', 'payments', ['created_at'], unique=False)
    op.create_index('ix_payments_order_status', 'payments', ['order_id', 'status'], unique=False)

    op.create_table(
        'refunds',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('payment_id', sa.String(length=36), nullable=False, comment='关联的支付ID'),
        sa.Column('order_id', sa.String(length=36), nullable=False, comment='订单ID（冗余，便于查询）'),
        sa.Column('gateway_refund_id', sa.String(length=200), nullable=True, comment='网关退款ID'),
        sa.Column('amount', sa.BigInteger(), nullable=False, comment='退款金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING', comment='退款状态: PENDING/SUCCEEDED/FAILED'),
        sa.Column('reason', sa.Text(), nullable=True, comment='退款原因'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败原因'),
        *_timestamps(),
        sa.Column('succeeded_at', sa.DateTime(timezone=True), nullable=True, comment='退款成功时间'),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gateway_refund_id', name='uq_refunds_gateway_refund_id'),
    )
    op.create_index('ix_refunds_payment_id', 'refunds', ['payment_id'], unique=False)
    op.create_index('ix_refunds_order_id', 'refunds', ['order_id'], unique=False)
    op.create_index('ix_refunds_status', 'refunds', ['status'], unique=False)
    op.create_index('ix_refunds_payment_status', 'refunds', ['payment_id', 'status'], unique=False)

    # Invoices
    op.create_table(
        'invoices',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False, comment='订单ID'),
        sa.Column('user_id', sa.String(length=64), nullable=False, comment='用户ID'),
        sa.Column('invoice_number', sa.String(length=50), nullable=False, comment='发票号 INV-<year>-<seq>'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ISSUED', comment='ISSUED/VOID'),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sa.Column('tax_amount', sa.BigInteger(), nullable=False),
        sa.Column('shipping_amount', sa.BigInteger(), nullable=False),
        sa.Column('discount_amount', sa.BigInteger(), nullable=False),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        sa.Column('billing_address', sa.JSON(), nullable=True, comment='账单地址快照'),
        sa.Column('line_items', sa.JSON(), nullable=True, comment='订单项快照'),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False, comment='开具时间'),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=True, comment='到期时间'),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True, comment='作废时间'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', name='uq_invoices_order_id'),
        sa.UniqueConstraint('invoice_number', name='uq_invoices_invoice_number'),
    )
    op.create_index('ix_invoices_user_id', 'invoices', ['user_id'], unique=False)
    op.create_index('ix_invoices_status', 'invoices', ['status'], unique=False)
    op.create_index('ix_invoices_status_issued_at', 'invoices', ['status', 'issued_at'], unique=False)

    op.create_table(
        'invoice_sequences',
        sa.Column('year', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('year'),
    )

    # Shipments
    op.create_table(
        'shipments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('rate_id', sa.String(length=36), nullable=True, comment='运费规则ID'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING', comment='PENDING/SHIPPED/DELIVERED/CANCELLED'),
        sa.Column('carrier', sa.String(length=100), nullable=True, comment='承运商'),
        sa.Column('tracking_number', sa.String(length=100), nullable=True, comment='运单号'),
        sa.Column('estimated_delivery', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shipments_order_id', 'shipments', ['order_id'], unique=False)
    op.create_index('ix_shipments_tracking_number', 'shipments', ['tracking_number'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_shipments_tracking_number', table_name='shipments')
    op.drop_index('ix_shipments_order_id', table_name='shipments')
    op.drop_table('shipments')

    op.drop_table('invoice_sequences')
    op.drop_index('ix_invoices_status_issued_at', table_name='invoices')
    op.drop_index('ix_invoices_status', table_name='invoices')
    op.drop_index('ix_invoices_user_id', table_name='invoices')
    op.drop_table('invoices')

    op.drop_index('ix_refunds_payment_status', table_name='refunds')
    op.drop_index('ix_refunds_status', table_name='refunds')
    op.drop_index('ix_refunds_order_id', table_name='refunds')
    op.drop_index('ix_refunds_payment_id', table_name='refunds')
    op.drop_table('refunds')

    op.drop_index('ix_payments_order_status', table_name='payments')
    op.drop_index('ix_payments_created_at', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_order_id', table_name='payments')
    op.drop_table('payments')

    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')

    op.drop_index('ix_orders_status_created_at', table_name='orders')
    op.drop_index('ix_orders_user_status', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')

    op.drop_table('shipping_rates')
    op.drop_index('ix_tax_rules_lookup', table_name='tax_rules')
    op.drop_table('tax_rules')
    op.drop_index('ix_coupons_code', table_name='coupons')
    op.drop_table('coupons')
