from .catalog import ProductSummarySerializer
from .commerce import (
    BankAccountSerializer,
    CartItemSerializer,
    CartItemWriteSerializer,
    CartSerializer,
    CheckoutContactSerializer,
    DigitalAccessGrantSerializer,
    DigitalAccessSerializer,
    DigitalAccessUpdateSerializer,
    DownloadLinkSerializer,
    OfflinePaymentSerializer,
    OrderCancelSerializer,
    OrderCreateSerializer,
    OrderItemSerializer,
    OrderRangeQuerySerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
    PaymentReviewSerializer,
    PaymentSerializer,
)
from .common import CustomerAccountSerializer, ProfileSerializer

__all__ = [
    "BankAccountSerializer",
    "CartItemSerializer",
    "CartItemWriteSerializer",
    "CartSerializer",
    "CheckoutContactSerializer",
    "CustomerAccountSerializer",
    "DigitalAccessGrantSerializer",
    "DigitalAccessSerializer",
    "DigitalAccessUpdateSerializer",
    "DownloadLinkSerializer",
    "OfflinePaymentSerializer",
    "OrderCancelSerializer",
    "OrderCreateSerializer",
    "OrderItemSerializer",
    "OrderRangeQuerySerializer",
    "OrderSerializer",
    "OrderStatusUpdateSerializer",
    "PaymentReviewSerializer",
    "PaymentSerializer",
    "ProductSummarySerializer",
    "ProfileSerializer",
]
