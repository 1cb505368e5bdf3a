from .banking import BankAccount, get_primary_bank_account, list_bank_accounts
from .digital_access import (
    DownloadLink,
    build_download_url,
    cleanup_expired_access,
    generate_download_link,
    get_access,
    get_access_for_order_item,
    grant_access,
    grant_access_for_order,
    list_access_for_customer,
    list_expired_access,
    process_download,
    revoke_access,
    update_access,
    validate_token,
)
from .orders import (
    ALLOWED_TRANSITIONS,
    CustomerContact,
    OrderLine,
    calculate_tax_cents,
    cancel_order,
    create_order,
    create_order_from_cart,
    get_order,
    get_order_by_number,
    list_orders_for_customer,
    list_orders_in_range,
    update_order_status,
)
from .payments import (
    approve_offline_payment,
    list_payments_for_order,
    list_pending_offline_payments,
    mark_payment_failed,
    mark_payment_succeeded,
    process_offline_payment,
    process_online_payment,
    verify_payment,
)
from .stock import adjust_stock, reserve_stock, restore_stock

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BankAccount",
    "CustomerContact",
    "DownloadLink",
    "OrderLine",
    "adjust_stock",
    "approve_offline_payment",
    "build_download_url",
    "calculate_tax_cents",
    "cancel_order",
    "cleanup_expired_access",
    "create_order",
    "create_order_from_cart",
    "generate_download_link",
    "get_access",
    "get_access_for_order_item",
    "get_order",
    "get_order_by_number",
    "get_primary_bank_account",
    "grant_access",
    "grant_access_for_order",
    "list_access_for_customer",
    "list_bank_accounts",
    "list_expired_access",
    "list_orders_for_customer",
    "list_orders_in_range",
    "list_payments_for_order",
    "list_pending_offline_payments",
    "mark_payment_failed",
    "mark_payment_succeeded",
    "process_download",
    "process_offline_payment",
    "process_online_payment",
    "reserve_stock",
    "restore_stock",
    "revoke_access",
    "update_access",
    "validate_token",
    "verify_payment",
]
