from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import BinaryIO

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import F, Q, QuerySet
from django.utils import timezone

from ..errors import DomainValidationError, DownloadError, NotFoundError, StorageUnavailableError
from ..models import CustomerAccount, DigitalAccess, Order, OrderItem
from ..tokens import DownloadToken, token_needs_rotation
from ..tools.email import send_download_link_email
from ..tools.storage import BlockStorageError, open_stored_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadLink:
    url: str
    token: str
    expires_at: datetime
    downloads_remaining: int
    file_name: str
    file_size_bytes: int
    mime_type: str


def _token_ttl() -> timedelta:
    return timedelta(hours=int(getattr(settings, "DIGITAL_ACCESS_TOKEN_TTL_HOURS", 24)))


def _rotation_margin() -> timedelta:
    return timedelta(minutes=int(getattr(settings, "DIGITAL_ACCESS_TOKEN_ROTATION_MARGIN_MINUTES", 5)))


def _default_max_downloads() -> int:
    return int(getattr(settings, "DIGITAL_ACCESS_DEFAULT_MAX_DOWNLOADS", 3))


def build_download_url(token: str) -> str:
    base_url = str(getattr(settings, "PUBLIC_API_BASE_URL", "") or "").strip().rstrip("/")
    return f"{base_url}/api/download/digital/{token}/"


def _require_digital_line(order_item: OrderItem) -> None:
    if order_item.order.payment_status != Order.PaymentStatus.PAID:
        raise DomainValidationError("Order must be paid before digital access is available.")
    product = order_item.product
    if product.is_print:
        raise DomainValidationError("Print products have no digital access.")
    if not product.has_digital_file:
        raise DomainValidationError(f"Product '{product.title}' has no digital file.")


def _require_downloadable(access: DigitalAccess) -> None:
    if not access.is_active:
        raise DownloadError("Download access has been revoked.")
    if access.is_expired:
        raise DownloadError("Download access has expired.")
    if not access.has_downloads_remaining:
        raise DownloadError("Download limit reached.")


def _rotate_if_needed(access: DigitalAccess, now: datetime) -> DigitalAccess:
    # Caller holds the row lock.
    if not token_needs_rotation(access.current_token, now, _rotation_margin()):
        return access
    access.apply_token(DownloadToken.issue(now, _token_ttl()))
    access.save(update_fields=["download_token", "token_issued_at", "token_expires_at", "updated_at"])
    logger.info("Rotated download token for access %s.", access.pk)
    return access


def grant_access(order_item: OrderItem, customer_account: CustomerAccount | None = None) -> DigitalAccess:
    """Return the access record for an order line, creating it on first grant.

    An existing record is returned untouched, so repeated payment callbacks
    never reset counters, expiry or the current token.
    """
    customer_account = customer_account or order_item.order.customer_account
    if customer_account is None:
        raise DomainValidationError("Digital access requires a customer account.")
    _require_digital_line(order_item)

    product = order_item.product
    now = timezone.now()
    token = DownloadToken.issue(now, _token_ttl())
    expiry_days = product.download_expiry_days
    with transaction.atomic():
        # Concurrent grants for the same line queue on the order item row.
        OrderItem.objects.select_for_update().filter(pk=order_item.pk).first()
        try:
            with transaction.atomic():
                access, created = DigitalAccess.objects.get_or_create(
                    order_item=order_item,
                    customer_account=customer_account,
                    defaults={
                        "product": product,
                        "granted_at": now,
                        "expires_at": now + timedelta(days=expiry_days) if expiry_days else None,
                        "max_downloads": product.max_downloads or _default_max_downloads(),
                        "download_token": token.token,
                        "token_issued_at": token.valid_from,
                        "token_expires_at": token.valid_until,
                        "is_active": True,
                    },
                )
        except (ValidationError, IntegrityError):
            access = DigitalAccess.objects.filter(
                order_item=order_item,
                customer_account=customer_account,
            ).first()
            if access is None:
                raise
            created = False

    if created:
        logger.info(
            "Granted digital access %s for order item %s to customer %s.",
            access.pk,
            order_item.pk,
            customer_account.pk,
        )
        transaction.on_commit(
            partial(send_download_link_email, access, build_download_url(access.download_token))
        )
    return access


def grant_access_for_order(order: Order) -> list[DigitalAccess]:
    granted: list[DigitalAccess] = []
    for item in order.items.select_related("product", "order").order_by("id"):
        product = item.product
        if product.is_print:
            continue
        if not product.has_digital_file:
            logger.warning(
                "Skipping digital access for order %s item %s: product %s has no file.",
                order.order_number,
                item.pk,
                product.pk,
            )
            continue
        if order.customer_account_id is None:
            logger.warning(
                "Skipping digital access for guest order %s item %s.",
                order.order_number,
                item.pk,
            )
            continue
        granted.append(grant_access(item))
    return granted


def get_access(access_id: int) -> DigitalAccess:
    access = DigitalAccess.objects.select_related("product", "order_item").filter(pk=access_id).first()
    if access is None:
        raise NotFoundError("DigitalAccess", access_id)
    return access


def get_access_for_order_item(order_item_id: int, customer_account: CustomerAccount) -> DigitalAccess:
    access = (
        DigitalAccess.objects.select_related("product", "order_item", "order_item__order")
        .filter(order_item_id=order_item_id, customer_account=customer_account)
        .first()
    )
    if access is None:
        raise NotFoundError("DigitalAccess", order_item_id)
    return access


def list_access_for_customer(customer_account: CustomerAccount) -> QuerySet[DigitalAccess]:
    return DigitalAccess.objects.filter(customer_account=customer_account).select_related(
        "product",
        "order_item",
        "order_item__order",
    )


def _lock_access(access_id: int) -> DigitalAccess:
    access = DigitalAccess.objects.select_for_update().filter(pk=access_id).first()
    if access is None:
        raise NotFoundError("DigitalAccess", access_id)
    return access


@transaction.atomic
def update_access(
    access_id: int,
    *,
    max_downloads: int | None = None,
    expiry_days: int | None = None,
    reset_download_count: bool = False,
) -> DigitalAccess:
    access = _lock_access(access_id)
    update_fields = ["updated_at"]
    if max_downloads is not None:
        if max_downloads < 1:
            raise DomainValidationError("max_downloads must be at least 1.")
        access.max_downloads = max_downloads
        update_fields.append("max_downloads")
    if expiry_days is not None:
        if expiry_days < 1:
            raise DomainValidationError("expiry_days must be at least 1.")
        access.expires_at = timezone.now() + timedelta(days=expiry_days)
        update_fields.append("expires_at")
    if reset_download_count:
        access.download_count = 0
        update_fields.append("download_count")
    access.save(update_fields=update_fields)
    logger.info("Updated digital access %s (%s).", access.pk, ", ".join(update_fields[1:]) or "no changes")
    return access


@transaction.atomic
def revoke_access(access_id: int) -> DigitalAccess:
    access = _lock_access(access_id)
    if not access.is_active and access.download_token is None:
        return access
    access.is_active = False
    access.revoked_at = access.revoked_at or timezone.now()
    access.apply_token(None)
    access.save(
        update_fields=[
            "is_active",
            "revoked_at",
            "download_token",
            "token_issued_at",
            "token_expires_at",
            "updated_at",
        ]
    )
    logger.info("Revoked digital access %s.", access.pk)
    return access


def generate_download_link(order_item_id: int, customer_account: CustomerAccount) -> DownloadLink:
    """Hand out a usable link without spending a download."""
    order_item = (
        OrderItem.objects.select_related("order", "product")
        .filter(pk=order_item_id, order__customer_account=customer_account, order__is_deleted=False)
        .first()
    )
    if order_item is None:
        raise NotFoundError("OrderItem", order_item_id)
    _require_digital_line(order_item)

    with transaction.atomic():
        existing = DigitalAccess.objects.filter(order_item=order_item, customer_account=customer_account).first()
        if existing is None:
            existing = grant_access(order_item, customer_account)
        access = _lock_access(existing.pk)
        _require_downloadable(access)
        access = _rotate_if_needed(access, timezone.now())

    product = order_item.product
    return DownloadLink(
        url=build_download_url(access.download_token),
        token=access.download_token,
        expires_at=access.token_expires_at,
        downloads_remaining=access.downloads_remaining,
        file_name=product.digital_file_name,
        file_size_bytes=product.digital_file_size_bytes,
        mime_type=product.digital_mime_type or "application/octet-stream",
    )


def process_download(token: str) -> tuple[DigitalAccess, BinaryIO]:
    """Spend one download for ``token`` and return the stored file stream.

    The counter update and the storage read share a transaction, so a storage
    failure does not consume a download.
    """
    token = (token or "").strip()
    if not token:
        raise DownloadError("Invalid download token.")

    with transaction.atomic():
        access = (
            DigitalAccess.objects.select_for_update()
            .select_related("product", "order_item")
            .filter(download_token=token)
            .first()
        )
        if access is None:
            raise DownloadError("Invalid download token.")

        now = timezone.now()
        _require_downloadable(access)
        current = access.current_token
        if current is None or not current.is_valid_at(now):
            raise DownloadError("Download link has expired. Request a new link.")

        access.download_count += 1
        access.last_downloaded_at = now
        access.save(update_fields=["download_count", "last_downloaded_at", "updated_at"])

        order_item = access.order_item
        order_item.download_count = access.download_count
        order_item.last_downloaded_at = now
        order_item.save(update_fields=["download_count", "last_downloaded_at", "updated_at"])

        try:
            stream = open_stored_file(access.product.digital_file_path)
        except BlockStorageError as exc:
            logger.exception("Failed to open file for digital access %s.", access.pk)
            raise StorageUnavailableError() from exc

    logger.info(
        "Digital access %s downloaded (%s/%s).",
        access.pk,
        access.download_count,
        access.max_downloads,
    )
    return access, stream


def validate_token(token: str) -> bool:
    token = (token or "").strip()
    if not token:
        return False
    access = DigitalAccess.objects.filter(download_token=token).first()
    if access is None or not access.can_download:
        return False
    current = access.current_token
    return current is not None and current.is_valid_at(timezone.now())


def list_expired_access(now: datetime | None = None) -> QuerySet[DigitalAccess]:
    now = now or timezone.now()
    return DigitalAccess.objects.filter(is_active=True).filter(
        Q(expires_at__isnull=False, expires_at__lte=now) | Q(download_count__gte=F("max_downloads"))
    )


def cleanup_expired_access(now: datetime | None = None) -> int:
    now = now or timezone.now()
    deactivated = list_expired_access(now).update(is_active=False, updated_at=now)
    logger.info("Deactivated %s expired or exhausted digital access record(s).", deactivated)
    return deactivated
