from .accounts import CustomerAccount, Profile
from .base import SoftDeleteManager, SoftDeleteModel, SoftDeleteQuerySet
from .catalog import Product
from .commerce import (
    Cart,
    CartItem,
    DigitalAccess,
    Order,
    OrderItem,
    Payment,
    PaymentMethod,
    WebhookEvent,
    validate_order_state,
)

__all__ = [
    "Profile",
    "CustomerAccount",
    "SoftDeleteManager",
    "SoftDeleteModel",
    "SoftDeleteQuerySet",
    "Product",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "Payment",
    "PaymentMethod",
    "DigitalAccess",
    "WebhookEvent",
    "validate_order_state",
]
