from django.contrib import admin

from .models import (
    Cart,
    CartItem,
    CustomerAccount,
    DigitalAccess,
    Order,
    OrderItem,
    Payment,
    Product,
    Profile,
    WebhookEvent,
)


class SoftDeleteAdmin(admin.ModelAdmin):
    """Show soft-deleted rows too; staff audit them from the admin."""

    def get_queryset(self, request):
        return self.model.all_objects.all()


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("clerk_user_id", "email", "is_active", "updated_at")
    search_fields = ("clerk_user_id", "email", "first_name", "last_name")
    list_filter = ("is_active",)


@admin.register(CustomerAccount)
class CustomerAccountAdmin(admin.ModelAdmin):
    list_display = ("profile", "billing_email", "external_customer_id", "updated_at")
    search_fields = ("profile__clerk_user_id", "billing_email", "full_name", "external_customer_id")


@admin.register(Product)
class ProductAdmin(SoftDeleteAdmin):
    list_display = ("title", "format", "status", "price_cents", "stock_quantity", "is_deleted", "updated_at")
    search_fields = ("title", "slug", "author", "isbn")
    list_filter = ("format", "status", "is_deleted")


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("customer_account", "updated_at")
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("total_cents", "download_count", "last_downloaded_at")


@admin.register(Order)
class OrderAdmin(SoftDeleteAdmin):
    list_display = (
        "order_number",
        "customer_account",
        "status",
        "payment_status",
        "fulfillment_status",
        "total_cents",
        "currency",
        "created_at",
    )
    search_fields = ("order_number", "customer_email", "customer_account__billing_email")
    list_filter = ("status", "payment_status", "fulfillment_status", "payment_method", "is_deleted")
    inlines = [OrderItemInline]


@admin.register(Payment)
class PaymentAdmin(SoftDeleteAdmin):
    list_display = ("reference", "order", "method", "payment_type", "status", "amount_cents", "created_at")
    search_fields = ("reference", "gateway_reference", "gateway_payment_intent_id", "order__order_number")
    list_filter = ("method", "payment_type", "status")


@admin.register(DigitalAccess)
class DigitalAccessAdmin(admin.ModelAdmin):
    list_display = (
        "order_item",
        "customer_account",
        "product",
        "download_count",
        "max_downloads",
        "expires_at",
        "is_active",
    )
    search_fields = ("customer_account__billing_email", "product__title", "order_item__order__order_number")
    list_filter = ("is_active",)
    exclude = ("download_token",)


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ("provider", "event_id", "event_type", "status", "delivery_count", "received_at")
    search_fields = ("event_id", "event_type")
    list_filter = ("provider", "status")
