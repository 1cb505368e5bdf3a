import io
from datetime import timedelta
from unittest.mock import patch

from django.core.exceptions import ValidationError
from django.test import TestCase, override_settings
from django.utils import timezone

from storefront.errors import DomainValidationError, DownloadError, NotFoundError, StorageUnavailableError
from storefront.models import DigitalAccess, Order, PaymentMethod
from storefront.services import (
    OrderLine,
    cleanup_expired_access,
    create_order,
    generate_download_link,
    get_access,
    get_access_for_order_item,
    grant_access,
    list_access_for_customer,
    list_expired_access,
    process_download,
    revoke_access,
    update_access,
    validate_token,
)
from storefront.tools.storage import BlockStorageError

from .factories import make_customer, make_digital_product, make_product


def _paid_order(customer, *products):
    order = create_order(
        [OrderLine(product.pk, 1) for product in products],
        customer_account=customer,
        payment_method=PaymentMethod.MANUAL,
    )
    Order.objects.filter(pk=order.pk).update(
        payment_status=Order.PaymentStatus.PAID,
        paid_at=timezone.now(),
        status=Order.Status.PROCESSING,
    )
    return Order.objects.get(pk=order.pk)


class GrantAccessTests(TestCase):
    def setUp(self):
        self.customer = make_customer()

    def test_grant_uses_system_default_cap_and_no_expiry(self):
        order = _paid_order(self.customer, make_digital_product())

        access = grant_access(order.items.get())

        self.assertEqual(access.max_downloads, 3)
        self.assertIsNone(access.expires_at)
        self.assertTrue(access.is_active)
        self.assertIsNotNone(access.download_token)
        self.assertGreater(access.token_expires_at, timezone.now() + timedelta(hours=23))

    def test_grant_uses_product_cap_and_expiry(self):
        order = _paid_order(self.customer, make_digital_product(max_downloads=5, download_expiry_days=30))

        access = grant_access(order.items.get())

        self.assertEqual(access.max_downloads, 5)
        self.assertAlmostEqual(
            access.expires_at.timestamp(),
            (access.granted_at + timedelta(days=30)).timestamp(),
            delta=1,
        )

    @override_settings(DIGITAL_ACCESS_DEFAULT_MAX_DOWNLOADS=7)
    def test_default_cap_comes_from_settings(self):
        order = _paid_order(self.customer, make_digital_product())
        self.assertEqual(grant_access(order.items.get()).max_downloads, 7)

    def test_grant_is_idempotent(self):
        order = _paid_order(self.customer, make_digital_product())
        item = order.items.get()
        first = grant_access(item)

        second = grant_access(item)

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(first.download_token, second.download_token)
        self.assertEqual(DigitalAccess.objects.count(), 1)

    def test_concurrent_grant_returns_the_winning_record(self):
        order = _paid_order(self.customer, make_digital_product())
        item = order.items.get()
        winner = grant_access(item)
        duplicate = ValidationError("Digital access for this order item already exists.")

        with patch.object(DigitalAccess.objects, "get_or_create", side_effect=duplicate):
            access = grant_access(item)

        self.assertEqual(access.pk, winner.pk)
        self.assertEqual(access.download_token, winner.download_token)
        self.assertEqual(DigitalAccess.objects.count(), 1)

    def test_grant_validation_errors_surface_when_nothing_exists(self):
        order = _paid_order(self.customer, make_digital_product())

        with patch.object(DigitalAccess.objects, "get_or_create", side_effect=ValidationError("broken")):
            with self.assertRaises(ValidationError):
                grant_access(order.items.get())

    def test_unpaid_order_is_rejected(self):
        order = create_order([OrderLine(make_digital_product().pk, 1)], customer_account=self.customer)
        with self.assertRaisesMessage(DomainValidationError, "must be paid"):
            grant_access(order.items.get())

    def test_print_and_fileless_products_are_rejected(self):
        order = _paid_order(self.customer, make_product(), make_digital_product(digital_file_path=""))
        print_item, fileless_item = order.items.order_by("id")

        with self.assertRaises(DomainValidationError):
            grant_access(print_item)
        with self.assertRaisesMessage(DomainValidationError, "no digital file"):
            grant_access(fileless_item)
        self.assertFalse(DigitalAccess.objects.exists())

    def test_lookup_and_listing(self):
        order = _paid_order(self.customer, make_digital_product())
        access = grant_access(order.items.get())

        self.assertEqual(get_access(access.pk), access)
        self.assertEqual(list(list_access_for_customer(self.customer)), [access])
        self.assertFalse(list_access_for_customer(make_customer()).exists())
        with self.assertRaises(NotFoundError):
            get_access(999999)

    def test_lookup_by_order_item_is_scoped_to_customer(self):
        order = _paid_order(self.customer, make_digital_product())
        item = order.items.get()
        access = grant_access(item)

        self.assertEqual(get_access_for_order_item(item.pk, self.customer), access)
        with self.assertRaises(NotFoundError):
            get_access_for_order_item(item.pk, make_customer())
        with self.assertRaises(NotFoundError):
            get_access_for_order_item(999999, self.customer)


@patch("storefront.services.digital_access.open_stored_file")
class ProcessDownloadTests(TestCase):
    def setUp(self):
        self.customer = make_customer()
        self.order = _paid_order(self.customer, make_digital_product())
        self.item = self.order.items.get()
        self.access = grant_access(self.item)

    def test_download_increments_and_mirrors_counters(self, open_file):
        open_file.return_value = io.BytesIO(b"%PDF-1.7")

        access, stream = process_download(self.access.download_token)

        self.assertEqual(stream.read(), b"%PDF-1.7")
        open_file.assert_called_once_with("books/field-notes.pdf")
        self.assertEqual(access.download_count, 1)
        self.item.refresh_from_db()
        self.assertEqual(self.item.download_count, 1)
        self.assertIsNotNone(self.item.last_downloaded_at)

    def test_download_cap_is_enforced(self, open_file):
        open_file.side_effect = lambda path: io.BytesIO(b"data")
        token = self.access.download_token

        for _ in range(3):
            process_download(token)
        with self.assertRaisesMessage(DownloadError, "Download limit reached"):
            process_download(token)

        self.access.refresh_from_db()
        self.assertEqual(self.access.download_count, 3)

    def test_storage_failure_does_not_spend_a_download(self, open_file):
        open_file.side_effect = BlockStorageError("bucket offline")

        with self.assertRaises(StorageUnavailableError):
            process_download(self.access.download_token)

        self.access.refresh_from_db()
        self.assertEqual(self.access.download_count, 0)

    def test_unknown_token_is_rejected(self, open_file):
        with self.assertRaises(DownloadError):
            process_download("not-a-token")
        with self.assertRaises(DownloadError):
            process_download("")
        open_file.assert_not_called()

    def test_revoked_access_is_rejected(self, open_file):
        token = self.access.download_token
        revoke_access(self.access.pk)

        with self.assertRaises(DownloadError):
            process_download(token)

    def test_hard_expiry_is_enforced(self, open_file):
        DigitalAccess.objects.filter(pk=self.access.pk).update(expires_at=timezone.now() - timedelta(minutes=1))

        with self.assertRaisesMessage(DownloadError, "expired"):
            process_download(self.access.download_token)

    def test_lapsed_token_window_is_enforced(self, open_file):
        DigitalAccess.objects.filter(pk=self.access.pk).update(
            token_expires_at=timezone.now() - timedelta(seconds=1)
        )

        with self.assertRaisesMessage(DownloadError, "Request a new link"):
            process_download(self.access.download_token)

    def test_validate_token_has_no_side_effects(self, open_file):
        self.assertTrue(validate_token(self.access.download_token))
        self.assertFalse(validate_token("unknown"))
        self.access.refresh_from_db()
        self.assertEqual(self.access.download_count, 0)

        DigitalAccess.objects.filter(pk=self.access.pk).update(download_count=3)
        self.assertFalse(validate_token(self.access.download_token))


class DownloadLinkTests(TestCase):
    def setUp(self):
        self.customer = make_customer()
        self.order = _paid_order(self.customer, make_digital_product())
        self.item = self.order.items.get()

    def test_link_grants_access_when_missing(self):
        link = generate_download_link(self.item.pk, self.customer)

        access = DigitalAccess.objects.get()
        self.assertEqual(link.url, f"https://api.storefront.test/api/download/digital/{access.download_token}/")
        self.assertEqual(link.downloads_remaining, 3)
        self.assertEqual(link.file_name, "field-notes.pdf")
        self.assertEqual(link.file_size_bytes, 2048)
        self.assertEqual(link.mime_type, "application/pdf")
        self.assertEqual(access.download_count, 0)

    def test_fresh_token_is_reused(self):
        first = generate_download_link(self.item.pk, self.customer)
        second = generate_download_link(self.item.pk, self.customer)
        self.assertEqual(first.token, second.token)

    def test_token_near_expiry_is_rotated_without_resetting_counters(self):
        access = grant_access(self.item)
        old_token = access.download_token
        hard_expiry = timezone.now() + timedelta(days=10)
        DigitalAccess.objects.filter(pk=access.pk).update(
            token_expires_at=timezone.now() + timedelta(minutes=2),
            download_count=2,
            expires_at=hard_expiry,
        )

        link = generate_download_link(self.item.pk, self.customer)

        access.refresh_from_db()
        self.assertNotEqual(link.token, old_token)
        self.assertEqual(access.download_token, link.token)
        self.assertGreater(access.token_expires_at, timezone.now() + timedelta(hours=23))
        self.assertEqual(access.download_count, 2)
        self.assertEqual(access.expires_at, hard_expiry)
        self.assertEqual(link.downloads_remaining, 1)

    def test_exhausted_access_is_rejected(self):
        access = grant_access(self.item)
        DigitalAccess.objects.filter(pk=access.pk).update(download_count=3)

        with self.assertRaises(DownloadError):
            generate_download_link(self.item.pk, self.customer)

    def test_other_customers_item_is_not_found(self):
        with self.assertRaises(NotFoundError):
            generate_download_link(self.item.pk, make_customer())

    def test_print_item_is_rejected(self):
        order = _paid_order(self.customer, make_product())
        with self.assertRaises(DomainValidationError):
            generate_download_link(order.items.get().pk, self.customer)


class AccessAdministrationTests(TestCase):
    def setUp(self):
        self.customer = make_customer()
        order = _paid_order(self.customer, make_digital_product(), make_digital_product(), make_digital_product())
        self.fresh, self.expired, self.exhausted = [grant_access(item) for item in order.items.order_by("id")]
        DigitalAccess.objects.filter(pk=self.expired.pk).update(expires_at=timezone.now() - timedelta(days=1))
        DigitalAccess.objects.filter(pk=self.exhausted.pk).update(download_count=3)

    def test_expired_listing_covers_expiry_and_cap(self):
        self.assertEqual(
            set(list_expired_access().values_list("pk", flat=True)),
            {self.expired.pk, self.exhausted.pk},
        )

    def test_cleanup_deactivates_without_deleting_and_is_idempotent(self):
        self.assertEqual(cleanup_expired_access(), 2)
        self.assertEqual(cleanup_expired_access(), 0)

        self.assertEqual(DigitalAccess.objects.count(), 3)
        self.assertEqual(
            set(DigitalAccess.objects.filter(is_active=False).values_list("pk", flat=True)),
            {self.expired.pk, self.exhausted.pk},
        )

    def test_update_access_changes_cap_expiry_and_counter(self):
        access = update_access(self.exhausted.pk, max_downloads=10, expiry_days=7, reset_download_count=True)

        self.assertEqual(access.max_downloads, 10)
        self.assertEqual(access.download_count, 0)
        self.assertGreater(access.expires_at, timezone.now() + timedelta(days=6))

    def test_update_access_rejects_invalid_values(self):
        with self.assertRaises(DomainValidationError):
            update_access(self.fresh.pk, max_downloads=0)
        with self.assertRaises(NotFoundError):
            update_access(999999, max_downloads=3)

    def test_revoke_clears_token_and_is_repeatable(self):
        access = revoke_access(self.fresh.pk)

        self.assertFalse(access.is_active)
        self.assertIsNone(access.download_token)
        self.assertIsNotNone(access.revoked_at)
        revoked_at = access.revoked_at

        self.assertEqual(revoke_access(self.fresh.pk).revoked_at, revoked_at)
