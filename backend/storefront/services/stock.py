from __future__ import annotations

import logging

from django.db import transaction

from ..errors import DomainValidationError, NotFoundError
from ..models import Product

logger = logging.getLogger(__name__)


def _sync_availability_status(product: Product) -> None:
    # Digital and bundle titles never change availability from stock counts.
    if not product.is_print:
        return
    if product.stock_quantity == 0 and product.status == Product.Status.PUBLISHED:
        product.status = Product.Status.OUT_OF_STOCK
    elif product.stock_quantity > 0 and product.status == Product.Status.OUT_OF_STOCK:
        product.status = Product.Status.PUBLISHED


@transaction.atomic
def adjust_stock(product_id: int, delta: int) -> Product:
    """Apply a signed stock change under a row lock.

    Raises ``DomainValidationError`` when the result would be negative; the
    surrounding transaction is expected to roll back.
    """
    product = Product.all_objects.select_for_update().filter(pk=product_id).first()
    if product is None:
        raise NotFoundError("Product", product_id)

    new_quantity = product.stock_quantity + delta
    if new_quantity < 0:
        raise DomainValidationError(
            f"Product '{product.title}' is not available in the requested quantity."
        )

    previous_status = product.status
    product.stock_quantity = new_quantity
    _sync_availability_status(product)
    product.save(update_fields=["stock_quantity", "status", "updated_at"])

    if product.status != previous_status:
        logger.info(
            "Product %s status changed %s -> %s at stock %s.",
            product.pk,
            previous_status,
            product.status,
            new_quantity,
        )
    return product


def reserve_stock(product_id: int, quantity: int) -> Product:
    if quantity < 1:
        raise DomainValidationError("Reserved quantity must be at least 1.")
    return adjust_stock(product_id, -quantity)


def restore_stock(product_id: int, quantity: int) -> Product:
    if quantity < 1:
        raise DomainValidationError("Restored quantity must be at least 1.")
    return adjust_stock(product_id, quantity)
