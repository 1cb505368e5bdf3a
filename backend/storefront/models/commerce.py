from __future__ import annotations

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from ..tokens import DownloadToken
from .base import SoftDeleteModel


class PaymentMethod(models.TextChoices):
    GATEWAY = "gateway", "Gateway"
    BANK_TRANSFER = "bank_transfer", "Bank transfer"
    CASH_DEPOSIT = "cash_deposit", "Cash deposit"
    MANUAL = "manual", "Manual"


class Cart(models.Model):
    customer_account = models.OneToOneField(
        "CustomerAccount",
        on_delete=models.CASCADE,
        related_name="cart",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Cart({self.customer_account_id})"


class CartItem(models.Model):
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("Product", on_delete=models.CASCADE, related_name="cart_items")
    quantity = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("id",)
        constraints = [
            models.UniqueConstraint(fields=("cart", "product"), name="cart_item_cart_product_unique"),
        ]

    def clean(self) -> None:
        if self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_id} x{self.quantity}"


class Order(SoftDeleteModel):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"
        REFUNDED = "refunded", "Refunded"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        AUTHORIZED = "authorized", "Authorized"
        PAID = "paid", "Paid"
        PARTIALLY_REFUNDED = "partially_refunded", "Partially refunded"
        FULLY_REFUNDED = "fully_refunded", "Fully refunded"
        FAILED = "failed", "Failed"

    class FulfillmentStatus(models.TextChoices):
        UNFULFILLED = "unfulfilled", "Unfulfilled"
        PARTIALLY_FULFILLED = "partially_fulfilled", "Partially fulfilled"
        FULFILLED = "fulfilled", "Fulfilled"
        DELIVERED = "delivered", "Delivered"

    order_number = models.CharField(max_length=40, unique=True, db_index=True)
    customer_account = models.ForeignKey(
        "CustomerAccount",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )
    customer_name = models.CharField(max_length=180, blank=True)
    customer_email = models.EmailField(blank=True)
    customer_phone = models.CharField(max_length=32, blank=True)
    shipping_address = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    currency = models.CharField(max_length=3, default="PKR")
    subtotal_cents = models.PositiveIntegerField(default=0)
    tax_cents = models.PositiveIntegerField(default=0)
    discount_cents = models.PositiveIntegerField(default=0)
    total_cents = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=24, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(
        max_length=24,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    fulfillment_status = models.CharField(
        max_length=24,
        choices=FulfillmentStatus.choices,
        default=FulfillmentStatus.UNFULFILLED,
    )
    payment_method = models.CharField(
        max_length=24,
        choices=PaymentMethod.choices,
        default=PaymentMethod.GATEWAY,
    )
    paid_at = models.DateTimeField(blank=True, null=True)
    completed_at = models.DateTimeField(blank=True, null=True)
    cancelled_at = models.DateTimeField(blank=True, null=True)
    cancellation_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta(SoftDeleteModel.Meta):
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=("customer_account", "status"), name="order_customer_status_idx"),
            models.Index(fields=("status", "updated_at"), name="order_status_updated_idx"),
            models.Index(fields=("payment_status", "created_at"), name="order_payment_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(total_cents=F("subtotal_cents") + F("tax_cents") - F("discount_cents")),
                name="order_total_matches_parts",
            ),
        ]

    def clean(self) -> None:
        self.currency = (self.currency or "PKR").strip().upper()
        self.customer_name = (self.customer_name or "").strip()
        self.customer_email = (self.customer_email or "").strip()
        self.customer_phone = (self.customer_phone or "").strip()
        self.shipping_address = (self.shipping_address or "").strip()
        self.notes = (self.notes or "").strip()
        self.cancellation_reason = (self.cancellation_reason or "").strip()

        if len(self.currency) != 3:
            raise ValidationError({"currency": "Currency must be a 3-letter code."})
        validate_order_state(self)

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status}/{self.payment_status})"


def validate_order_state(order: Order) -> None:
    """Cross-check the money fields and the three status axes of an order."""
    errors: dict[str, str] = {}

    expected_total = (order.subtotal_cents or 0) + (order.tax_cents or 0) - (order.discount_cents or 0)
    if expected_total < 0:
        errors["discount_cents"] = "Discount cannot exceed subtotal + tax."
    elif order.total_cents != expected_total:
        errors["total_cents"] = "Total must match subtotal + tax - discount."

    if order.status == Order.Status.COMPLETED:
        if not order.completed_at:
            errors["completed_at"] = "Completed orders need a completion timestamp."
        if order.fulfillment_status not in {
            Order.FulfillmentStatus.FULFILLED,
            Order.FulfillmentStatus.DELIVERED,
        }:
            errors["fulfillment_status"] = "Completed orders must be fulfilled."
    elif order.fulfillment_status in {
        Order.FulfillmentStatus.FULFILLED,
        Order.FulfillmentStatus.DELIVERED,
    } and order.status != Order.Status.REFUNDED:
        errors["fulfillment_status"] = "Only completed or refunded orders can be fulfilled."

    if order.status == Order.Status.CANCELLED and not order.cancelled_at:
        errors["cancelled_at"] = "Cancelled orders need a cancellation timestamp."
    if order.status != Order.Status.CANCELLED and order.cancelled_at:
        errors["cancelled_at"] = "Only cancelled orders carry a cancellation timestamp."

    if order.payment_status == Order.PaymentStatus.PAID and not order.paid_at:
        errors["paid_at"] = "Paid orders need a payment timestamp."

    if errors:
        raise ValidationError(errors)


class OrderItem(models.Model):
    order = models.ForeignKey("Order", on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("Product", on_delete=models.PROTECT, related_name="order_items")
    quantity = models.PositiveIntegerField(default=1)
    unit_price_cents = models.PositiveIntegerField(default=0)
    discount_price_cents = models.PositiveIntegerField(blank=True, null=True)
    total_cents = models.PositiveIntegerField(default=0)
    product_title_snapshot = models.CharField(max_length=240, blank=True)
    product_format_snapshot = models.CharField(max_length=16, blank=True)
    download_count = models.PositiveIntegerField(default=0)
    last_downloaded_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("id",)
        indexes = [
            models.Index(fields=("order", "product"), name="order_item_order_product_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(quantity__gte=1), name="order_item_quantity_positive"),
        ]

    @property
    def effective_unit_price_cents(self) -> int:
        if self.discount_price_cents is not None:
            return self.discount_price_cents
        return self.unit_price_cents

    def clean(self) -> None:
        if self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

        if self.product_id:
            if not self.product_title_snapshot:
                self.product_title_snapshot = self.product.title
            if not self.product_format_snapshot:
                self.product_format_snapshot = self.product.format

        self.total_cents = self.effective_unit_price_cents * (self.quantity or 0)

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_title_snapshot} x{self.quantity}"


class Payment(SoftDeleteModel):
    Method = PaymentMethod

    class Type(models.TextChoices):
        ONLINE = "online", "Online"
        OFFLINE = "offline", "Offline"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        FAILED = "failed", "Failed"

    reference = models.CharField(max_length=64, unique=True, db_index=True)
    order = models.ForeignKey("Order", on_delete=models.PROTECT, related_name="payments")
    customer_account = models.ForeignKey(
        "CustomerAccount",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    method = models.CharField(max_length=24, choices=Method.choices, default=Method.GATEWAY)
    payment_type = models.CharField(max_length=16, choices=Type.choices, default=Type.ONLINE)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    amount_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default="PKR")
    gateway_reference = models.CharField(max_length=191, blank=True, db_index=True)
    gateway_payment_intent_id = models.CharField(max_length=191, blank=True, db_index=True)
    checkout_url = models.URLField(max_length=1024, blank=True)
    gateway_response = models.TextField(blank=True)
    bank_name = models.CharField(max_length=120, blank=True)
    account_number = models.CharField(max_length=64, blank=True)
    transaction_id = models.CharField(max_length=128, blank=True)
    deposit_slip_path = models.CharField(max_length=420, blank=True)
    approved_by = models.CharField(max_length=128, blank=True)
    approved_at = models.DateTimeField(blank=True, null=True)
    processed_at = models.DateTimeField(blank=True, null=True)
    raw_payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta(SoftDeleteModel.Meta):
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=("order", "status"), name="payment_order_status_idx"),
            models.Index(fields=("payment_type", "status"), name="payment_type_status_idx"),
        ]

    @property
    def is_offline(self) -> bool:
        return self.payment_type == self.Type.OFFLINE

    @property
    def is_settled(self) -> bool:
        return self.status != self.Status.PENDING

    def clean(self) -> None:
        self.reference = (self.reference or "").strip()
        self.currency = (self.currency or "PKR").strip().upper()
        self.gateway_reference = (self.gateway_reference or "").strip()
        self.gateway_payment_intent_id = (self.gateway_payment_intent_id or "").strip()
        self.bank_name = (self.bank_name or "").strip()
        self.account_number = (self.account_number or "").strip()
        self.transaction_id = (self.transaction_id or "").strip()

        if not self.reference:
            raise ValidationError({"reference": "Payment reference is required."})
        if len(self.currency) != 3:
            raise ValidationError({"currency": "Currency must be a 3-letter code."})
        if self.status == self.Status.PAID and not self.processed_at:
            raise ValidationError({"processed_at": "Paid payments need a processed timestamp."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.reference} ({self.status})"


class DigitalAccess(models.Model):
    order_item = models.ForeignKey("OrderItem", on_delete=models.PROTECT, related_name="digital_access")
    product = models.ForeignKey("Product", on_delete=models.PROTECT, related_name="digital_access")
    customer_account = models.ForeignKey(
        "CustomerAccount",
        on_delete=models.CASCADE,
        related_name="digital_access",
    )
    granted_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(blank=True, null=True)
    max_downloads = models.PositiveIntegerField(default=3)
    download_count = models.PositiveIntegerField(default=0)
    last_downloaded_at = models.DateTimeField(blank=True, null=True)
    download_token = models.CharField(max_length=96, unique=True, null=True, blank=True)
    token_issued_at = models.DateTimeField(blank=True, null=True)
    token_expires_at = models.DateTimeField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    revoked_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-granted_at",)
        verbose_name_plural = "digital access"
        indexes = [
            models.Index(fields=("customer_account", "is_active"), name="access_customer_active_idx"),
            models.Index(fields=("is_active", "expires_at"), name="access_active_expires_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=("order_item", "customer_account"),
                name="access_order_item_customer_unique",
            ),
        ]

    @property
    def is_expired(self) -> bool:
        return bool(self.expires_at and timezone.now() >= self.expires_at)

    @property
    def has_downloads_remaining(self) -> bool:
        return self.download_count < self.max_downloads

    @property
    def downloads_remaining(self) -> int:
        return max(self.max_downloads - self.download_count, 0)

    @property
    def can_download(self) -> bool:
        return self.is_active and not self.is_expired and self.has_downloads_remaining

    @property
    def current_token(self) -> DownloadToken | None:
        if not self.download_token or not self.token_expires_at:
            return None
        return DownloadToken(
            token=self.download_token,
            valid_from=self.token_issued_at or self.granted_at,
            valid_until=self.token_expires_at,
        )

    def apply_token(self, token: DownloadToken | None) -> None:
        self.download_token = token.token if token else None
        self.token_issued_at = token.valid_from if token else None
        self.token_expires_at = token.valid_until if token else None

    def clean(self) -> None:
        if self.max_downloads < 1:
            raise ValidationError({"max_downloads": "max_downloads must be at least 1."})
        if self.order_item_id and self.product_id and self.order_item.product_id != self.product_id:
            raise ValidationError({"product": "Product must match the order item product."})
        self.download_token = (self.download_token or "").strip() or None

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"DigitalAccess({self.order_item_id}, {self.customer_account_id})"


class WebhookEvent(models.Model):
    class Provider(models.TextChoices):
        STRIPE = "stripe", "Stripe"
        OTHER = "other", "Other"

    class Status(models.TextChoices):
        RECEIVED = "received", "Received"
        PROCESSED = "processed", "Processed"
        FAILED = "failed", "Failed"
        IGNORED = "ignored", "Ignored"

    provider = models.CharField(max_length=24, choices=Provider.choices, default=Provider.STRIPE)
    event_id = models.CharField(max_length=191)
    event_type = models.CharField(max_length=191)
    payload = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=24, choices=Status.choices, default=Status.RECEIVED)
    error_message = models.TextField(blank=True)
    delivery_count = models.PositiveIntegerField(default=1)
    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ("-received_at",)
        constraints = [
            models.UniqueConstraint(fields=("provider", "event_id"), name="webhook_provider_event_unique"),
        ]
        indexes = [
            models.Index(fields=("status", "received_at"), name="webhook_status_received_idx"),
        ]

    def clean(self) -> None:
        self.event_id = (self.event_id or "").strip()
        self.event_type = (self.event_type or "").strip()
        self.error_message = (self.error_message or "").strip()

        if not self.event_id:
            raise ValidationError({"event_id": "Event id is required."})
        if not self.event_type:
            raise ValidationError({"event_type": "Event type is required."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.provider}:{self.event_id}"
