from __future__ import annotations

import logging
from functools import partial
from typing import Any

from django.conf import settings
from django.core.files.uploadedfile import UploadedFile
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone
from django.utils.text import get_valid_filename

from ..errors import DomainValidationError, NotFoundError, PaymentError, StorageUnavailableError
from ..models import CustomerAccount, Order, Payment, PaymentMethod
from ..tools.email import send_payment_confirmed_email
from ..tools.gateway import GatewayError, create_checkout_session, retrieve_checkout_session
from ..tools.storage import BlockStorageError, save_stored_file
from .digital_access import grant_access_for_order
from .orders import OFFLINE_PAYMENT_METHODS, create_pending_payment

logger = logging.getLogger(__name__)

PAID_SESSION_STATUSES = frozenset({"paid", "no_payment_required"})
DEFAULT_FAILURE_MESSAGE = "Payment failed"


def _lock_order(order_id: int) -> Order:
    order = Order.all_objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


def _lock_payment_and_order(payment_id: int) -> tuple[Payment, Order]:
    # Order row first, then payment: the same order checkout uses.
    order_id = Payment.all_objects.filter(pk=payment_id).values_list("order_id", flat=True).first()
    if order_id is None:
        raise NotFoundError("Payment", payment_id)
    order = _lock_order(order_id)
    payment = Payment.all_objects.select_for_update().get(pk=payment_id)
    return payment, order


def _ensure_payable(order: Order) -> None:
    if order.payment_status == Order.PaymentStatus.PAID:
        raise DomainValidationError(f"Order {order.order_number} is already paid.")
    if order.status == Order.Status.CANCELLED:
        raise DomainValidationError(f"Cannot process payment for cancelled order {order.order_number}.")


def _with_query(url: str, query: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


def _apply_payment_success(payment: Payment, order: Order) -> None:
    """Settle a locked pending payment and advance its order."""
    now = timezone.now()
    payment.status = Payment.Status.PAID
    payment.processed_at = now
    payment.save()

    if order.payment_status == Order.PaymentStatus.PAID or order.status in {
        Order.Status.CANCELLED,
        Order.Status.REFUNDED,
    }:
        logger.warning(
            "Payment %s settled for order %s in state %s/%s; refund review required.",
            payment.reference,
            order.order_number,
            order.status,
            order.payment_status,
        )
        return

    order.payment_status = Order.PaymentStatus.PAID
    order.paid_at = now
    update_fields = ["payment_status", "paid_at", "updated_at"]
    if order.status == Order.Status.PENDING:
        order.status = Order.Status.PROCESSING
        update_fields.append("status")
    order.save(update_fields=update_fields)

    grant_access_for_order(order)
    logger.info("Payment %s settled order %s.", payment.reference, order.order_number)
    transaction.on_commit(partial(send_payment_confirmed_email, order, payment))


def _apply_payment_failure(payment: Payment, message: str) -> None:
    payment.status = Payment.Status.FAILED
    payment.processed_at = timezone.now()
    payment.gateway_response = message or DEFAULT_FAILURE_MESSAGE
    payment.save()
    logger.info("Payment %s failed: %s", payment.reference, payment.gateway_response)


def _claim_unsent_gateway_payment(order: Order) -> Payment:
    # A payment that already carries a session id stays bound to that session,
    # so its callback can still find it.
    payment = (
        order.payments.select_for_update()
        .filter(method=PaymentMethod.GATEWAY, status=Payment.Status.PENDING, gateway_reference="")
        .order_by("-created_at")
        .first()
    )
    return payment or create_pending_payment(order, method=PaymentMethod.GATEWAY)


def process_online_payment(order: Order) -> Payment:
    """Open a hosted checkout session for the order.

    Every session gets its own pending Payment. The gateway call runs outside
    the order lock; the session id is persisted under a fresh lock afterwards.
    """
    with transaction.atomic():
        locked = _lock_order(order.pk)
        _ensure_payable(locked)
        payment = _claim_unsent_gateway_payment(locked)
        order_number = locked.order_number
        total_cents = locked.total_cents

    success_url = str(getattr(settings, "STRIPE_CHECKOUT_SUCCESS_URL", "") or "")
    cancel_url = str(getattr(settings, "STRIPE_CHECKOUT_CANCEL_URL", "") or "")
    try:
        session = create_checkout_session(
            amount_cents=total_cents,
            currency=locked.currency,
            reference=payment.reference,
            description=f"Order {order_number}",
            customer_email=locked.customer_email,
            metadata={"order_number": order_number, "payment_reference": payment.reference},
            success_url=_with_query(success_url, "session_id={CHECKOUT_SESSION_ID}"),
            cancel_url=_with_query(cancel_url, f"order={order_number}"),
        )
    except GatewayError as exc:
        raise PaymentError(str(exc)) from exc

    with transaction.atomic():
        payment, locked = _lock_payment_and_order(payment.pk)
        _ensure_payable(locked)
        if payment.status != Payment.Status.PENDING or payment.gateway_reference:
            # A concurrent checkout bound this payment to its own session.
            payment = create_pending_payment(locked, method=PaymentMethod.GATEWAY)

        payment.amount_cents = locked.total_cents
        payment.gateway_reference = session.id
        payment.gateway_payment_intent_id = session.payment_intent_id
        payment.checkout_url = session.url
        payment.save()

        if locked.payment_method != PaymentMethod.GATEWAY:
            locked.payment_method = PaymentMethod.GATEWAY
            locked.save(update_fields=["payment_method", "updated_at"])

    logger.info("Started gateway checkout %s for order %s.", session.id, locked.order_number)
    return payment


def _store_payment_proof(order: Order, payment: Payment, proof: UploadedFile) -> str:
    prefix = str(getattr(settings, "PAYMENT_PROOF_STORAGE_PREFIX", "payment-proofs") or "").strip("/")
    file_name = get_valid_filename(proof.name or "proof") or "proof"
    key = f"{prefix}/{order.order_number}/{payment.reference}-{file_name}"
    try:
        return save_stored_file(
            key,
            proof.read(),
            content_type=getattr(proof, "content_type", "") or "application/octet-stream",
        )
    except BlockStorageError as exc:
        logger.exception("Failed to store payment proof for %s.", payment.reference)
        raise StorageUnavailableError() from exc


def process_offline_payment(
    order: Order,
    *,
    method: str = PaymentMethod.BANK_TRANSFER,
    bank_name: str = "",
    account_number: str = "",
    transaction_id: str = "",
    proof: UploadedFile | None = None,
) -> Payment:
    if method not in OFFLINE_PAYMENT_METHODS:
        raise DomainValidationError(f"'{method}' is not an offline payment method.")

    with transaction.atomic():
        locked = _lock_order(order.pk)
        _ensure_payable(locked)

        payment = (
            locked.payments.select_for_update()
            .filter(method=method, status=Payment.Status.PENDING, deposit_slip_path="", transaction_id="")
            .order_by("-created_at")
            .first()
        )
        if payment is None:
            payment = create_pending_payment(locked, method=method)

        payment.bank_name = bank_name
        payment.account_number = account_number
        payment.transaction_id = transaction_id
        payment.amount_cents = locked.total_cents
        if proof is not None:
            payment.deposit_slip_path = _store_payment_proof(locked, payment, proof)
        payment.save()

        update_fields = ["payment_status", "updated_at"]
        locked.payment_status = Order.PaymentStatus.PENDING
        if locked.payment_method != method:
            locked.payment_method = method
            update_fields.append("payment_method")
        locked.save(update_fields=update_fields)

    logger.info("Offline payment %s submitted for order %s.", payment.reference, locked.order_number)
    return payment


def approve_offline_payment(
    payment_id: int,
    *,
    approve: bool,
    notes: str = "",
    approved_by: str = "",
) -> Payment:
    with transaction.atomic():
        payment, order = _lock_payment_and_order(payment_id)
        if payment.is_deleted:
            raise NotFoundError("Payment", payment_id)
        if not payment.is_offline:
            raise DomainValidationError("Only offline payments can be reviewed.")
        if payment.status != Payment.Status.PENDING:
            raise DomainValidationError(f"Payment {payment.reference} is already {payment.status}.")

        payment.approved_by = approved_by
        payment.approved_at = timezone.now()
        if approve:
            _ensure_payable(order)
            payment.gateway_response = notes
            _apply_payment_success(payment, order)
        else:
            _apply_payment_failure(payment, notes or "Payment rejected")

    logger.info(
        "Offline payment %s %s by %s.",
        payment.reference,
        "approved" if approve else "rejected",
        approved_by or "unknown reviewer",
    )
    return payment


def _find_gateway_payment(*, session_id: str = "", payment_intent_id: str = "") -> Payment | None:
    if session_id:
        return Payment.all_objects.filter(gateway_reference=session_id).first()
    if payment_intent_id:
        return Payment.all_objects.filter(gateway_payment_intent_id=payment_intent_id).first()
    return None


def mark_payment_succeeded(
    *,
    session_id: str = "",
    payment_intent_id: str = "",
    raw_payload: dict[str, Any] | None = None,
) -> Payment | None:
    """Apply a gateway success callback. Replays for a settled payment are no-ops."""
    match = _find_gateway_payment(session_id=session_id, payment_intent_id=payment_intent_id)
    if match is None:
        logger.warning(
            "No payment matches gateway session %r / intent %r.",
            session_id,
            payment_intent_id,
        )
        return None

    with transaction.atomic():
        payment, order = _lock_payment_and_order(match.pk)
        if payment.status != Payment.Status.PENDING:
            logger.info("Payment %s already %s; ignoring replay.", payment.reference, payment.status)
            return payment
        if payment_intent_id and not payment.gateway_payment_intent_id:
            payment.gateway_payment_intent_id = payment_intent_id
        if raw_payload is not None:
            payment.raw_payload = raw_payload
        _apply_payment_success(payment, order)
    return payment


def mark_payment_failed(
    *,
    session_id: str = "",
    payment_intent_id: str = "",
    message: str = "",
    raw_payload: dict[str, Any] | None = None,
) -> Payment | None:
    match = _find_gateway_payment(session_id=session_id, payment_intent_id=payment_intent_id)
    if match is None:
        logger.warning(
            "No payment matches failed gateway session %r / intent %r.",
            session_id,
            payment_intent_id,
        )
        return None

    with transaction.atomic():
        payment, _order = _lock_payment_and_order(match.pk)
        if payment.status != Payment.Status.PENDING:
            logger.info("Payment %s already %s; ignoring failure replay.", payment.reference, payment.status)
            return payment
        if raw_payload is not None:
            payment.raw_payload = raw_payload
        _apply_payment_failure(payment, message)
    return payment


def verify_payment(reference: str, *, customer_account: CustomerAccount | None = None) -> Payment:
    queryset = Payment.objects.select_related("order").filter(reference=(reference or "").strip())
    if customer_account is not None:
        queryset = queryset.filter(order__customer_account=customer_account)
    payment = queryset.first()
    if payment is None:
        raise NotFoundError("Payment", reference)

    if (
        payment.status != Payment.Status.PENDING
        or payment.method != PaymentMethod.GATEWAY
        or not payment.gateway_reference
    ):
        return payment

    try:
        session = retrieve_checkout_session(payment.gateway_reference)
    except GatewayError as exc:
        raise PaymentError(str(exc)) from exc

    if session.payment_status in PAID_SESSION_STATUSES:
        mark_payment_succeeded(session_id=session.id, payment_intent_id=session.payment_intent_id)
        payment = Payment.objects.select_related("order").get(pk=payment.pk)
    return payment


def list_pending_offline_payments() -> QuerySet[Payment]:
    return (
        Payment.objects.filter(payment_type=Payment.Type.OFFLINE, status=Payment.Status.PENDING)
        .select_related("order", "customer_account")
        .order_by("created_at")
    )


def list_payments_for_order(order: Order) -> QuerySet[Payment]:
    return Payment.objects.filter(order=order).order_by("-created_at")
