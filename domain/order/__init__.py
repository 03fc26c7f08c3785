"""Order domain exports."""
from .entity import Order, OrderItem, OrderPaymentStatus, OrderStatus, ShippingAddress
from .repository import OrderRepository

__all__ = ["Order", "OrderItem", "OrderPaymentStatus", "OrderStatus", "ShippingAddress", "OrderRepository"]
