import io
from io import StringIO
from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from storefront.models import Cart, CartItem, DigitalAccess, Order, Payment, PaymentMethod
from storefront.services import OrderLine, approve_offline_payment, create_order, update_order_status
from storefront.tools.gateway import CheckoutSession

from .factories import make_customer, make_digital_product, make_product


class StorefrontApiTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.auth_headers = {"HTTP_AUTHORIZATION": "Bearer unit-test-token"}
        self.claims = {
            "sub": "buyer_123",
            "email": "buyer@example.com",
            "given_name": "Buyer",
            "family_name": "User",
        }
        self.staff_claims = {
            "sub": "staff_1",
            "email": "staff@example.com",
            "metadata": {"role": "staff"},
        }

    def _request(self, method: str, path: str, data=None, *, claims=None, format="json"):
        with patch(
            "storefront.tools.auth.authentication.decode_clerk_token",
            return_value=claims or self.claims,
        ):
            handler = getattr(self.client, method)
            return handler(path, data=data, format=format, **self.auth_headers)

    def _buyer(self):
        return make_customer(clerk_user_id="buyer_123", email="buyer@example.com")

    def _paid_digital_order(self):
        customer = self._buyer()
        order = create_order(
            [OrderLine(make_digital_product().pk, 1)],
            customer_account=customer,
            payment_method=PaymentMethod.BANK_TRANSFER,
        )
        approve_offline_payment(order.payments.get().pk, approve=True, approved_by="staff@example.com")
        return order


class PublicEndpointTests(StorefrontApiTestCase):
    def test_health_is_public(self):
        response = self.client.get("/api/health/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_account_endpoints_require_authentication(self):
        response = self.client.get("/api/account/orders/")

        self.assertEqual(response.status_code, 401)

    def test_me_creates_customer_account_from_claims(self):
        response = self._request("get", "/api/me/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["clerk_user_id"], "buyer_123")
        self.assertEqual(payload["customer_account"]["billing_email"], "buyer@example.com")


class CartAndOrderApiTests(StorefrontApiTestCase):
    def test_add_to_cart_merges_quantities(self):
        product = make_product()

        self._request("post", "/api/account/cart/items/", {"product_id": product.pk, "quantity": 1})
        response = self._request("post", "/api/account/cart/items/", {"product_id": product.pk, "quantity": 2})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["items"][0]["quantity"], 3)
        self.assertEqual(response.json()["subtotal_cents"], 3000)

    def test_remove_missing_cart_item_returns_404(self):
        response = self._request("delete", "/api/account/cart/items/999/")

        self.assertEqual(response.status_code, 404)

    def test_create_order_reserves_stock_and_returns_pending_payment(self):
        product = make_product(stock_quantity=5)

        response = self._request(
            "post",
            "/api/account/orders/create/",
            {"items": [{"product_id": product.pk, "quantity": 2}], "payment_method": "gateway"},
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["order"]["status"], Order.Status.PENDING)
        self.assertEqual(payload["order"]["subtotal_cents"], 2000)
        self.assertEqual(payload["order"]["tax_cents"], 300)
        self.assertEqual(payload["order"]["total_cents"], 2300)
        self.assertEqual(payload["order"]["customer_email"], "buyer@example.com")
        self.assertEqual(len(payload["payments"]), 1)
        self.assertEqual(payload["payments"][0]["status"], Payment.Status.PENDING)
        product.refresh_from_db()
        self.assertEqual(product.stock_quantity, 3)

    def test_create_order_rejects_insufficient_stock(self):
        product = make_product(stock_quantity=1)

        response = self._request(
            "post",
            "/api/account/orders/create/",
            {"items": [{"product_id": product.pk, "quantity": 2}]},
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("not available", response.json()["detail"])
        self.assertFalse(Order.objects.exists())

    def test_create_order_rejects_empty_items(self):
        response = self._request("post", "/api/account/orders/create/", {"items": []})

        self.assertEqual(response.status_code, 400)

    def test_order_from_cart_clears_cart(self):
        product = make_product()
        self._request("post", "/api/account/cart/items/", {"product_id": product.pk, "quantity": 2})

        response = self._request(
            "post",
            "/api/account/orders/from-cart/",
            {"payment_method": "bank_transfer", "shipping_address": "12 Mall Road"},
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["order"]["shipping_address"], "12 Mall Road")
        self.assertEqual(response.json()["payments"][0]["payment_type"], Payment.Type.OFFLINE)
        self.assertFalse(CartItem.objects.filter(cart__customer_account__profile__clerk_user_id="buyer_123").exists())
        self.assertTrue(Cart.objects.filter(customer_account__profile__clerk_user_id="buyer_123").exists())

    def test_order_from_empty_cart_is_rejected(self):
        response = self._request("post", "/api/account/orders/from-cart/", {})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Cart is empty.")

    def test_cannot_read_another_customers_order(self):
        order = create_order([OrderLine(make_product().pk, 1)], customer_account=make_customer())

        response = self._request("get", f"/api/account/orders/{order.order_number}/")

        self.assertEqual(response.status_code, 404)

    def test_customer_can_cancel_pending_order(self):
        product = make_product(stock_quantity=4)
        order = create_order([OrderLine(product.pk, 3)], customer_account=self._buyer())

        response = self._request(
            "post",
            f"/api/account/orders/{order.order_number}/cancel/",
            {"reason": "Changed my mind"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["order"]["status"], Order.Status.CANCELLED)
        self.assertEqual(response.json()["order"]["cancellation_reason"], "Changed my mind")
        product.refresh_from_db()
        self.assertEqual(product.stock_quantity, 4)

    def test_customer_cannot_cancel_processing_order(self):
        order = create_order([OrderLine(make_product().pk, 1)], customer_account=self._buyer())
        Order.objects.filter(pk=order.pk).update(status=Order.Status.PROCESSING)

        response = self._request("post", f"/api/account/orders/{order.order_number}/cancel/", {})

        self.assertEqual(response.status_code, 400)

    def test_customer_cancel_rechecks_status_under_lock(self):
        order = create_order([OrderLine(make_product().pk, 1)], customer_account=self._buyer())
        stale = Order.objects.get(pk=order.pk)
        update_order_status(order, Order.Status.PROCESSING)

        with patch("storefront.views_modules.account.get_order_by_number", return_value=stale):
            response = self._request("post", f"/api/account/orders/{order.order_number}/cancel/", {})

        self.assertEqual(response.status_code, 400)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PROCESSING)


class PaymentApiTests(StorefrontApiTestCase):
    @patch("storefront.services.payments.create_checkout_session")
    def test_checkout_returns_hosted_url(self, mock_create_session):
        mock_create_session.return_value = CheckoutSession(
            id="cs_api",
            url="https://checkout.stripe.test/cs_api",
            payment_status="unpaid",
            payment_intent_id="",
        )
        order = create_order([OrderLine(make_product().pk, 1)], customer_account=self._buyer())

        response = self._request("post", f"/api/account/orders/{order.order_number}/checkout/")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["checkout_url"], "https://checkout.stripe.test/cs_api")
        self.assertEqual(Payment.objects.get(order=order).gateway_reference, "cs_api")

    @patch("storefront.services.payments.save_stored_file")
    def test_offline_payment_accepts_multipart_proof(self, mock_save):
        mock_save.side_effect = lambda key, data, content_type: key
        order = create_order(
            [OrderLine(make_product().pk, 1)],
            customer_account=self._buyer(),
            payment_method=PaymentMethod.BANK_TRANSFER,
        )

        response = self._request(
            "post",
            f"/api/account/orders/{order.order_number}/offline-payment/",
            {
                "method": "bank_transfer",
                "bank_name": "National Bank",
                "proof": SimpleUploadedFile("slip.jpg", b"image-bytes", content_type="image/jpeg"),
            },
            format="multipart",
        )

        self.assertEqual(response.status_code, 201)
        payment = response.json()["payment"]
        self.assertEqual(payment["bank_name"], "National Bank")
        self.assertTrue(payment["deposit_slip_path"].startswith(f"payment-proofs/{order.order_number}/"))
        self.assertEqual(Payment.objects.filter(order=order).count(), 1)

    def test_offline_payment_requires_proof_or_transaction_id(self):
        order = create_order(
            [OrderLine(make_product().pk, 1)],
            customer_account=self._buyer(),
            payment_method=PaymentMethod.BANK_TRANSFER,
        )

        response = self._request(
            "post",
            f"/api/account/orders/{order.order_number}/offline-payment/",
            {"method": "bank_transfer"},
        )

        self.assertEqual(response.status_code, 400)

    def test_bank_accounts_for_offline_deposits(self):
        response = self._request("get", "/api/account/bank-accounts/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(len(payload["accounts"]), 2)
        self.assertEqual(payload["primary"]["bank_name"], "Habib Bank Limited")
        self.assertEqual(payload["primary"]["iban"], "PK36HABB0000123456789012")

    @override_settings(STOREFRONT_BANK_ACCOUNTS=[])
    def test_bank_accounts_empty_when_unconfigured(self):
        response = self._request("get", "/api/account/bank-accounts/")

        self.assertEqual(response.json(), {"accounts": [], "primary": None})

    @patch("storefront.services.payments.retrieve_checkout_session")
    def test_verify_settles_paid_session(self, mock_retrieve):
        order = create_order([OrderLine(make_product().pk, 1)], customer_account=self._buyer())
        payment = order.payments.get()
        Payment.objects.filter(pk=payment.pk).update(gateway_reference="cs_verify")
        mock_retrieve.return_value = CheckoutSession(
            id="cs_verify",
            url="",
            payment_status="paid",
            payment_intent_id="pi_verify",
        )

        response = self._request("post", f"/api/account/payments/{payment.reference}/verify/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["payment"]["status"], Payment.Status.PAID)
        self.assertEqual(response.json()["order"]["payment_status"], Order.PaymentStatus.PAID)
        self.assertEqual(response.json()["order"]["status"], Order.Status.PROCESSING)


class DownloadApiTests(StorefrontApiTestCase):
    def test_download_link_and_public_download(self):
        order = self._paid_digital_order()
        item = order.items.get()

        link_response = self._request("post", f"/api/account/downloads/{item.pk}/link/")

        self.assertEqual(link_response.status_code, 200)
        link = link_response.json()
        self.assertEqual(link["downloads_remaining"], 3)
        self.assertEqual(link["file_name"], "field-notes.pdf")
        self.assertTrue(link["url"].startswith("https://api.storefront.test/api/download/digital/"))
        token = link["url"].rstrip("/").rsplit("/", 1)[-1]

        validate_response = self.client.get(f"/api/download/digital/{token}/validate/")
        self.assertEqual(validate_response.json(), {"valid": True})

        with patch(
            "storefront.services.digital_access.open_stored_file",
            return_value=io.BytesIO(b"%PDF-1.7"),
        ):
            download_response = self.client.get(f"/api/download/digital/{token}/")

        self.assertEqual(download_response.status_code, 200)
        self.assertEqual(b"".join(download_response.streaming_content), b"%PDF-1.7")
        self.assertEqual(download_response["Cache-Control"], "no-store")
        self.assertIn("field-notes.pdf", download_response["Content-Disposition"])
        access = DigitalAccess.objects.get(order_item=item)
        self.assertEqual(access.download_count, 1)

    def test_access_detail_by_order_item(self):
        order = self._paid_digital_order()
        item = order.items.get()

        response = self._request("get", f"/api/account/downloads/{item.pk}/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["order_item"], item.pk)
        self.assertEqual(response.json()["downloads_remaining"], 3)

    def test_access_detail_for_other_customer_is_not_found(self):
        order = create_order([OrderLine(make_digital_product().pk, 1)], customer_account=make_customer())

        response = self._request("get", f"/api/account/downloads/{order.items.get().pk}/")

        self.assertEqual(response.status_code, 404)

    def test_download_link_for_unpaid_order_is_rejected(self):
        order = create_order([OrderLine(make_digital_product().pk, 1)], customer_account=self._buyer())

        response = self._request("post", f"/api/account/downloads/{order.items.get().pk}/link/")

        self.assertEqual(response.status_code, 400)

    def test_unknown_download_token_is_forbidden(self):
        response = self.client.get("/api/download/digital/not-a-token/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.client.get("/api/download/digital/not-a-token/validate/").json(), {"valid": False})

    def test_customer_download_list(self):
        self._paid_digital_order()

        response = self._request("get", "/api/account/downloads/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 1)
        self.assertTrue(response.json()[0]["can_download"])


class StaffApiTests(StorefrontApiTestCase):
    def test_staff_endpoints_reject_customers(self):
        response = self._request("get", "/api/staff/payments/pending-offline/")

        self.assertEqual(response.status_code, 403)

    def test_staff_reviews_offline_payment(self):
        order = create_order(
            [OrderLine(make_product().pk, 1)],
            customer_account=make_customer(),
            payment_method=PaymentMethod.CASH_DEPOSIT,
        )
        payment = order.payments.get()

        listing = self._request("get", "/api/staff/payments/pending-offline/", claims=self.staff_claims)
        self.assertEqual([row["reference"] for row in listing.json()], [payment.reference])

        response = self._request(
            "post",
            f"/api/staff/payments/{payment.pk}/review/",
            {"approve": True, "notes": "Deposit matched"},
            claims=self.staff_claims,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["payment"]["status"], Payment.Status.PAID)
        self.assertEqual(response.json()["payment"]["approved_by"], "staff@example.com")
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PROCESSING)

    def test_staff_status_update_rejects_invalid_transition(self):
        order = create_order([OrderLine(make_product().pk, 1)], customer_account=make_customer())

        response = self._request(
            "post",
            f"/api/staff/orders/{order.pk}/status/",
            {"status": "completed"},
            claims=self.staff_claims,
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("Invalid status transition", response.json()["detail"])

    def test_staff_order_listing_requires_a_filter(self):
        response = self._request("get", "/api/staff/orders/", claims=self.staff_claims)

        self.assertEqual(response.status_code, 400)

    def test_staff_order_listing_by_customer(self):
        customer = make_customer()
        order = create_order([OrderLine(make_product().pk, 1)], customer_account=customer)
        create_order([OrderLine(make_product().pk, 1)], customer_account=make_customer())

        response = self._request(
            "get",
            f"/api/staff/orders/?customer_account_id={customer.pk}",
            claims=self.staff_claims,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["order_number"] for row in response.json()], [order.order_number])

    def test_staff_updates_and_revokes_access(self):
        order = self._paid_digital_order()
        access = DigitalAccess.objects.get(order_item=order.items.get())

        patch_response = self._request(
            "patch",
            f"/api/staff/digital-access/{access.pk}/",
            {"max_downloads": 10},
            claims=self.staff_claims,
        )
        self.assertEqual(patch_response.status_code, 200)
        self.assertEqual(patch_response.json()["max_downloads"], 10)

        revoke_response = self._request("delete", f"/api/staff/digital-access/{access.pk}/", claims=self.staff_claims)
        self.assertEqual(revoke_response.status_code, 200)
        self.assertFalse(revoke_response.json()["is_active"])
        access.refresh_from_db()
        self.assertIsNone(access.download_token)

    def test_cleanup_endpoint_and_command(self):
        order = self._paid_digital_order()
        DigitalAccess.objects.filter(order_item=order.items.get()).update(download_count=3)

        stdout = StringIO()
        call_command("cleanup_digital_access", "--dry-run", stdout=stdout)
        self.assertIn("1 digital access record(s) would be deactivated.", stdout.getvalue())

        response = self._request("post", "/api/staff/digital-access/cleanup/", claims=self.staff_claims)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"deactivated": 1})
        self.assertFalse(DigitalAccess.objects.get(order_item=order.items.get()).is_active)
