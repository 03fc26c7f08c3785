"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel, OrderItemModel
from .payment import PaymentModel, RefundModel
from .invoice import InvoiceModel, InvoiceSequenceModel
from .pricing import CouponModel, TaxRuleModel, ShippingRateModel
from .shipment import ShipmentModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
    "RefundModel",
    "InvoiceModel",
    "InvoiceSequenceModel",
    "CouponModel",
    "TaxRuleModel",
    "ShippingRateModel",
    "ShipmentModel",
]
