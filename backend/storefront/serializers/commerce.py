from __future__ import annotations

from rest_framework import serializers

from ..models import Cart, CartItem, DigitalAccess, Order, OrderItem, Payment, PaymentMethod
from ..services.orders import OFFLINE_PAYMENT_METHODS
from .catalog import ProductSummarySerializer


class CartItemSerializer(serializers.ModelSerializer):
    product = ProductSummarySerializer(read_only=True)
    line_total_cents = serializers.SerializerMethodField()

    class Meta:
        model = CartItem
        fields = ("id", "product", "quantity", "line_total_cents", "created_at", "updated_at")
        read_only_fields = fields

    def get_line_total_cents(self, obj: CartItem) -> int:
        return obj.product.effective_price_cents * obj.quantity


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    subtotal_cents = serializers.SerializerMethodField()

    class Meta:
        model = Cart
        fields = ("id", "items", "subtotal_cents", "updated_at")
        read_only_fields = fields

    def get_subtotal_cents(self, obj: Cart) -> int:
        return sum(item.product.effective_price_cents * item.quantity for item in obj.items.all())


class CartItemWriteSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(default=1, min_value=1, max_value=1000)


class OrderItemSerializer(serializers.ModelSerializer):
    effective_unit_price_cents = serializers.IntegerField(read_only=True)

    class Meta:
        model = OrderItem
        fields = (
            "id",
            "product",
            "product_title_snapshot",
            "product_format_snapshot",
            "quantity",
            "unit_price_cents",
            "discount_price_cents",
            "effective_unit_price_cents",
            "total_cents",
            "download_count",
            "last_downloaded_at",
        )
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)

    class Meta:
        model = Payment
        fields = (
            "id",
            "reference",
            "order_number",
            "method",
            "payment_type",
            "status",
            "amount_cents",
            "currency",
            "checkout_url",
            "gateway_response",
            "bank_name",
            "account_number",
            "transaction_id",
            "deposit_slip_path",
            "approved_by",
            "approved_at",
            "processed_at",
            "created_at",
        )
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = (
            "id",
            "order_number",
            "customer_name",
            "customer_email",
            "customer_phone",
            "shipping_address",
            "notes",
            "currency",
            "subtotal_cents",
            "tax_cents",
            "discount_cents",
            "total_cents",
            "status",
            "payment_status",
            "fulfillment_status",
            "payment_method",
            "paid_at",
            "completed_at",
            "cancelled_at",
            "cancellation_reason",
            "items",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class OrderLineInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1, max_value=1000)


class CheckoutContactSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.GATEWAY)
    customer_name = serializers.CharField(required=False, allow_blank=True, max_length=180)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    customer_phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    shipping_address = serializers.CharField(required=False, allow_blank=True, max_length=4000)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=4000)


class OrderCreateSerializer(CheckoutContactSerializer):
    items = OrderLineInputSerializer(many=True, allow_empty=False)


class OrderCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=24)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class OfflinePaymentSerializer(serializers.Serializer):
    method = serializers.ChoiceField(
        choices=[choice for choice in PaymentMethod.choices if choice[0] in OFFLINE_PAYMENT_METHODS],
        default=PaymentMethod.BANK_TRANSFER,
    )
    bank_name = serializers.CharField(required=False, allow_blank=True, max_length=120)
    account_number = serializers.CharField(required=False, allow_blank=True, max_length=64)
    transaction_id = serializers.CharField(required=False, allow_blank=True, max_length=128)
    proof = serializers.FileField(required=False, allow_empty_file=False)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        if not attrs.get("transaction_id") and not attrs.get("proof"):
            raise serializers.ValidationError("Provide a transaction id or a proof of deposit.")
        return attrs


class PaymentReviewSerializer(serializers.Serializer):
    approve = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class DigitalAccessSerializer(serializers.ModelSerializer):
    product = ProductSummarySerializer(read_only=True)
    order_number = serializers.CharField(source="order_item.order.order_number", read_only=True)
    downloads_remaining = serializers.IntegerField(read_only=True)
    is_expired = serializers.BooleanField(read_only=True)
    can_download = serializers.BooleanField(read_only=True)

    class Meta:
        model = DigitalAccess
        fields = (
            "id",
            "order_item",
            "order_number",
            "product",
            "granted_at",
            "expires_at",
            "max_downloads",
            "download_count",
            "downloads_remaining",
            "last_downloaded_at",
            "is_active",
            "is_expired",
            "can_download",
            "revoked_at",
        )
        read_only_fields = fields


class DigitalAccessGrantSerializer(serializers.Serializer):
    order_item_id = serializers.IntegerField(min_value=1)


class DigitalAccessUpdateSerializer(serializers.Serializer):
    max_downloads = serializers.IntegerField(required=False, min_value=1)
    expiry_days = serializers.IntegerField(required=False, min_value=1)
    reset_download_count = serializers.BooleanField(required=False, default=False)


class DownloadLinkSerializer(serializers.Serializer):
    url = serializers.CharField()
    expires_at = serializers.DateTimeField()
    downloads_remaining = serializers.IntegerField()
    file_name = serializers.CharField()
    file_size_bytes = serializers.IntegerField()
    mime_type = serializers.CharField()


class OrderRangeQuerySerializer(serializers.Serializer):
    customer_account_id = serializers.IntegerField(required=False, min_value=1)
    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        start, end = attrs.get("start"), attrs.get("end")
        if (start is None) != (end is None):
            raise serializers.ValidationError("Provide both start and end, or neither.")
        if not attrs.get("customer_account_id") and start is None:
            raise serializers.ValidationError("Filter by customer_account_id or a start/end range.")
        return attrs


class BankAccountSerializer(serializers.Serializer):
    bank_name = serializers.CharField()
    account_title = serializers.CharField()
    account_number = serializers.CharField()
    iban = serializers.CharField()
    branch_code = serializers.CharField()
    branch_name = serializers.CharField()
    is_primary = serializers.BooleanField()
