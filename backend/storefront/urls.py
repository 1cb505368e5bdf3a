from django.urls import path

from .views import (
    AccountBankAccountListView,
    AccountCartItemView,
    AccountCartView,
    AccountDigitalAccessDetailView,
    AccountDigitalAccessListView,
    AccountDownloadLinkView,
    AccountOfflinePaymentView,
    AccountOrderCancelView,
    AccountOrderCheckoutView,
    AccountOrderCreateView,
    AccountOrderDetailView,
    AccountOrderFromCartView,
    AccountOrderListView,
    AccountPaymentVerifyView,
    DigitalDownloadValidateView,
    DigitalDownloadView,
    HealthView,
    MeView,
    StaffAccessCleanupView,
    StaffDigitalAccessDetailView,
    StaffDigitalAccessGrantView,
    StaffExpiredAccessListView,
    StaffOrderListView,
    StaffOrderStatusView,
    StaffPaymentReviewView,
    StaffPendingPaymentListView,
)
from .webhooks import StripeWebhookView

urlpatterns = [
    path("health/", HealthView.as_view(), name="health"),
    path("me/", MeView.as_view(), name="me"),
    path("account/cart/", AccountCartView.as_view(), name="account-cart"),
    path("account/cart/items/", AccountCartItemView.as_view(), name="account-cart-items"),
    path(
        "account/cart/items/<int:product_id>/",
        AccountCartItemView.as_view(),
        name="account-cart-item-detail",
    ),
    path("account/orders/", AccountOrderListView.as_view(), name="account-orders"),
    path("account/orders/create/", AccountOrderCreateView.as_view(), name="account-order-create"),
    path(
        "account/orders/from-cart/",
        AccountOrderFromCartView.as_view(),
        name="account-order-from-cart",
    ),
    path(
        "account/orders/<str:order_number>/",
        AccountOrderDetailView.as_view(),
        name="account-order-detail",
    ),
    path(
        "account/orders/<str:order_number>/cancel/",
        AccountOrderCancelView.as_view(),
        name="account-order-cancel",
    ),
    path(
        "account/orders/<str:order_number>/checkout/",
        AccountOrderCheckoutView.as_view(),
        name="account-order-checkout",
    ),
    path(
        "account/orders/<str:order_number>/offline-payment/",
        AccountOfflinePaymentView.as_view(),
        name="account-order-offline-payment",
    ),
    path("account/bank-accounts/", AccountBankAccountListView.as_view(), name="account-bank-accounts"),
    path(
        "account/payments/<str:reference>/verify/",
        AccountPaymentVerifyView.as_view(),
        name="account-payment-verify",
    ),
    path("account/downloads/", AccountDigitalAccessListView.as_view(), name="account-downloads"),
    path(
        "account/downloads/<int:order_item_id>/",
        AccountDigitalAccessDetailView.as_view(),
        name="account-download-detail",
    ),
    path(
        "account/downloads/<int:order_item_id>/link/",
        AccountDownloadLinkView.as_view(),
        name="account-download-link",
    ),
    path("download/digital/<str:token>/", DigitalDownloadView.as_view(), name="digital-download"),
    path(
        "download/digital/<str:token>/validate/",
        DigitalDownloadValidateView.as_view(),
        name="digital-download-validate",
    ),
    path("staff/orders/", StaffOrderListView.as_view(), name="staff-orders"),
    path("staff/orders/<int:order_id>/status/", StaffOrderStatusView.as_view(), name="staff-order-status"),
    path(
        "staff/payments/pending-offline/",
        StaffPendingPaymentListView.as_view(),
        name="staff-pending-offline-payments",
    ),
    path(
        "staff/payments/<int:payment_id>/review/",
        StaffPaymentReviewView.as_view(),
        name="staff-payment-review",
    ),
    path("staff/digital-access/", StaffDigitalAccessGrantView.as_view(), name="staff-access-grant"),
    path(
        "staff/digital-access/expired/",
        StaffExpiredAccessListView.as_view(),
        name="staff-access-expired",
    ),
    path(
        "staff/digital-access/cleanup/",
        StaffAccessCleanupView.as_view(),
        name="staff-access-cleanup",
    ),
    path(
        "staff/digital-access/<int:access_id>/",
        StaffDigitalAccessDetailView.as_view(),
        name="staff-access-detail",
    ),
    path("webhooks/stripe/", StripeWebhookView.as_view(), name="stripe-webhook"),
]
