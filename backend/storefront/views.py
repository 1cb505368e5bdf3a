from .views_modules.account import (
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
)
from .views_modules.common import HealthView, MeView
from .views_modules.downloads import DigitalDownloadValidateView, DigitalDownloadView
from .views_modules.staff import (
    StaffAccessCleanupView,
    StaffDigitalAccessDetailView,
    StaffDigitalAccessGrantView,
    StaffExpiredAccessListView,
    StaffOrderListView,
    StaffOrderStatusView,
    StaffPaymentReviewView,
    StaffPendingPaymentListView,
)

__all__ = [
    "AccountBankAccountListView",
    "AccountCartItemView",
    "AccountCartView",
    "AccountDigitalAccessDetailView",
    "AccountDigitalAccessListView",
    "AccountDownloadLinkView",
    "AccountOfflinePaymentView",
    "AccountOrderCancelView",
    "AccountOrderCheckoutView",
    "AccountOrderCreateView",
    "AccountOrderDetailView",
    "AccountOrderFromCartView",
    "AccountOrderListView",
    "AccountPaymentVerifyView",
    "DigitalDownloadValidateView",
    "DigitalDownloadView",
    "HealthView",
    "MeView",
    "StaffAccessCleanupView",
    "StaffDigitalAccessDetailView",
    "StaffDigitalAccessGrantView",
    "StaffExpiredAccessListView",
    "StaffOrderListView",
    "StaffOrderStatusView",
    "StaffPaymentReviewView",
    "StaffPendingPaymentListView",
]
