from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from functools import partial
from typing import Iterable

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import QuerySet
from django.utils import timezone

from ..errors import DomainValidationError, NotFoundError
from ..models import Cart, CustomerAccount, Order, OrderItem, Payment, PaymentMethod, Product
from ..tools.email import send_order_confirmed_email
from .numbering import generate_order_number, generate_payment_reference
from .stock import reserve_stock, restore_stock

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    Order.Status.PENDING: frozenset({Order.Status.PROCESSING, Order.Status.CANCELLED}),
    Order.Status.PROCESSING: frozenset({Order.Status.COMPLETED, Order.Status.CANCELLED}),
    Order.Status.COMPLETED: frozenset({Order.Status.REFUNDED}),
    Order.Status.CANCELLED: frozenset(),
    Order.Status.REFUNDED: frozenset(),
}

OFFLINE_PAYMENT_METHODS = frozenset({PaymentMethod.BANK_TRANSFER, PaymentMethod.CASH_DEPOSIT})
ORDERABLE_STATUSES = frozenset({Product.Status.PUBLISHED, Product.Status.OUT_OF_STOCK})


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class CustomerContact:
    name: str = ""
    email: str = ""
    phone: str = ""


def calculate_tax_cents(subtotal_cents: int) -> int:
    rate = Decimal(str(getattr(settings, "STOREFRONT_TAX_RATE", "0")))
    return int((Decimal(subtotal_cents) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _contact_with_account_defaults(
    contact: CustomerContact | None,
    customer_account: CustomerAccount | None,
) -> CustomerContact:
    contact = contact or CustomerContact()
    if customer_account is None:
        return contact
    profile = customer_account.profile
    return CustomerContact(
        name=contact.name or customer_account.full_name or profile.display_name,
        email=contact.email or customer_account.billing_email or profile.email,
        phone=contact.phone or customer_account.phone or profile.phone,
    )


def _load_orderable_products(lines: list[OrderLine]) -> dict[int, Product]:
    products = Product.objects.in_bulk({line.product_id for line in lines})
    requested = Counter()
    for line in lines:
        requested[line.product_id] += line.quantity

    for product_id, quantity in requested.items():
        product = products.get(product_id)
        if product is None or product.status not in ORDERABLE_STATUSES:
            raise NotFoundError("Product", product_id)
        if product.is_print and (
            product.status == Product.Status.OUT_OF_STOCK or not product.is_available(quantity)
        ):
            raise DomainValidationError(
                f"Product '{product.title}' is not available in the requested quantity."
            )
    return products


def create_pending_payment(
    order: Order,
    *,
    method: str,
    bank_name: str = "",
    account_number: str = "",
    transaction_id: str = "",
    deposit_slip_path: str = "",
) -> Payment:
    payment_type = Payment.Type.OFFLINE if method in OFFLINE_PAYMENT_METHODS else Payment.Type.ONLINE
    return Payment.objects.create(
        reference=generate_payment_reference(),
        order=order,
        customer_account=order.customer_account,
        method=method,
        payment_type=payment_type,
        status=Payment.Status.PENDING,
        amount_cents=order.total_cents,
        currency=order.currency,
        bank_name=bank_name,
        account_number=account_number,
        transaction_id=transaction_id,
        deposit_slip_path=deposit_slip_path,
    )


@transaction.atomic
def create_order(
    lines: Iterable[OrderLine],
    *,
    customer_account: CustomerAccount | None = None,
    payment_method: str = PaymentMethod.GATEWAY,
    contact: CustomerContact | None = None,
    shipping_address: str = "",
    notes: str = "",
) -> Order:
    """Create an order, its lines, stock reservations and the first payment record.

    Everything runs in one transaction; any failure leaves no order rows and no
    stock movement behind.
    """
    lines = list(lines)
    if not lines:
        raise DomainValidationError("Order must contain at least one item.")
    if any(line.quantity < 1 for line in lines):
        raise DomainValidationError("Quantity must be at least 1.")
    if payment_method not in PaymentMethod.values:
        raise DomainValidationError(f"Unsupported payment method '{payment_method}'.")

    products = _load_orderable_products(lines)
    subtotal_cents = sum(products[line.product_id].effective_price_cents * line.quantity for line in lines)
    tax_cents = calculate_tax_cents(subtotal_cents)
    discount_cents = 0
    contact = _contact_with_account_defaults(contact, customer_account)

    order = Order.objects.create(
        order_number=generate_order_number(),
        customer_account=customer_account,
        customer_name=contact.name,
        customer_email=contact.email,
        customer_phone=contact.phone,
        shipping_address=shipping_address or (customer_account.shipping_address if customer_account else ""),
        notes=notes,
        currency=getattr(settings, "STOREFRONT_CURRENCY", "PKR"),
        subtotal_cents=subtotal_cents,
        tax_cents=tax_cents,
        discount_cents=discount_cents,
        total_cents=subtotal_cents + tax_cents - discount_cents,
        payment_method=payment_method,
    )

    for line in lines:
        product = products[line.product_id]
        OrderItem.objects.create(
            order=order,
            product=product,
            quantity=line.quantity,
            unit_price_cents=product.price_cents,
            discount_price_cents=product.discount_price_cents,
            product_title_snapshot=product.title,
            product_format_snapshot=product.format,
        )

    # Lock rows in id order so concurrent checkouts cannot deadlock each other.
    for line in sorted(lines, key=lambda item: item.product_id):
        if products[line.product_id].is_print:
            reserve_stock(line.product_id, line.quantity)

    if payment_method != PaymentMethod.MANUAL:
        create_pending_payment(order, method=payment_method)

    logger.info(
        "Created order %s with %s line(s), total %s %s.",
        order.order_number,
        len(lines),
        order.total_cents,
        order.currency,
    )
    transaction.on_commit(partial(send_order_confirmed_email, order))
    return order


@transaction.atomic
def create_order_from_cart(
    customer_account: CustomerAccount,
    *,
    payment_method: str = PaymentMethod.GATEWAY,
    contact: CustomerContact | None = None,
    shipping_address: str = "",
    notes: str = "",
) -> Order:
    cart = Cart.objects.filter(customer_account=customer_account).first()
    cart_items = list(cart.items.order_by("id")) if cart else []
    if not cart_items:
        raise DomainValidationError("Cart is empty.")

    order = create_order(
        [OrderLine(product_id=item.product_id, quantity=item.quantity) for item in cart_items],
        customer_account=customer_account,
        payment_method=payment_method,
        contact=contact,
        shipping_address=shipping_address,
        notes=notes,
    )
    cart.items.all().delete()
    return order


def get_order(order_id: int) -> Order:
    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


def get_order_by_number(order_number: str, *, customer_account: CustomerAccount | None = None) -> Order:
    queryset = Order.objects.filter(order_number=(order_number or "").strip())
    if customer_account is not None:
        queryset = queryset.filter(customer_account=customer_account)
    order = queryset.first()
    if order is None:
        raise NotFoundError("Order", order_number)
    return order


def list_orders_for_customer(customer_account: CustomerAccount) -> QuerySet[Order]:
    return Order.objects.filter(customer_account=customer_account).prefetch_related("items")


def list_orders_in_range(start: datetime, end: datetime) -> QuerySet[Order]:
    if end < start:
        raise DomainValidationError("Range end must not be before range start.")
    return Order.objects.filter(created_at__gte=start, created_at__lte=end).prefetch_related("items")


def _restore_reserved_stock(order: Order) -> None:
    for item in order.items.filter(product_format_snapshot=Product.Format.PRINT).order_by("product_id"):
        try:
            with transaction.atomic():
                restore_stock(item.product_id, item.quantity)
        except (DomainValidationError, NotFoundError, DatabaseError):
            logger.exception(
                "Failed to restore stock for product %s on cancelled order %s.",
                item.product_id,
                order.order_number,
            )


def update_order_status(
    order: Order | int,
    new_status: str,
    *,
    reason: str = "",
    allowed_from: Iterable[str] | None = None,
) -> Order:
    """Move an order along the transition table.

    ``allowed_from`` narrows the permitted source states further; it is checked
    against the locked row, not the caller's copy.
    """
    order_id = order.pk if isinstance(order, Order) else order
    if new_status not in Order.Status.values:
        raise DomainValidationError(f"Invalid order status '{new_status}'.")

    with transaction.atomic():
        locked = Order.objects.select_for_update().filter(pk=order_id).first()
        if locked is None:
            raise NotFoundError("Order", order_id)

        previous_status = locked.status
        if allowed_from is not None and previous_status not in set(allowed_from):
            raise DomainValidationError(
                f"Order {locked.order_number} can no longer be changed from {previous_status}."
            )
        if new_status not in ALLOWED_TRANSITIONS[previous_status]:
            raise DomainValidationError(
                f"Invalid status transition from {previous_status} to {new_status}."
            )

        now = timezone.now()
        locked.status = new_status
        update_fields = ["status", "updated_at"]
        if new_status == Order.Status.COMPLETED:
            locked.completed_at = now
            locked.fulfillment_status = Order.FulfillmentStatus.FULFILLED
            update_fields.extend(["completed_at", "fulfillment_status"])
        elif new_status == Order.Status.CANCELLED:
            locked.cancelled_at = now
            locked.cancellation_reason = reason
            update_fields.extend(["cancelled_at", "cancellation_reason"])
        locked.save(update_fields=update_fields)

        if new_status == Order.Status.CANCELLED:
            _restore_reserved_stock(locked)

    logger.info("Order %s moved %s -> %s.", locked.order_number, previous_status, new_status)
    return locked


def cancel_order(
    order: Order | int,
    reason: str = "",
    *,
    allowed_from: Iterable[str] | None = None,
) -> Order:
    return update_order_status(order, Order.Status.CANCELLED, reason=reason, allowed_from=allowed_from)
