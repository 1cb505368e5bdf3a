import hashlib
import hmac
import json
import time
from unittest.mock import patch

from django.test import RequestFactory, TestCase, override_settings

from storefront.models import Order, Payment, WebhookEvent
from storefront.services import OrderLine, create_order
from storefront.webhooks import (
    EVENT_HANDLERS,
    StripeWebhookView,
    WebhookVerificationError,
    _verify_webhook,
)

from .factories import make_customer, make_digital_product


def _signed_header(payload: bytes, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class WebhookVerificationTests(TestCase):
    @override_settings(STRIPE_WEBHOOK_SECRET="")
    def test_missing_webhook_secret(self):
        with self.assertRaises(WebhookVerificationError):
            _verify_webhook(b"{}", "t=1,v1=abc")

    def test_missing_signature_header(self):
        with self.assertRaisesMessage(WebhookVerificationError, "Missing Stripe-Signature"):
            _verify_webhook(b"{}", "")

    def test_valid_signature_returns_event(self):
        payload = json.dumps({"id": "evt_1", "type": "ping"}).encode("utf-8")

        event = _verify_webhook(payload, _signed_header(payload, "whsec_storefront"))

        self.assertEqual(event["id"], "evt_1")

    def test_tampered_payload_is_rejected(self):
        payload = json.dumps({"id": "evt_1"}).encode("utf-8")
        header = _signed_header(payload, "whsec_storefront")

        with self.assertRaises(WebhookVerificationError):
            _verify_webhook(payload.replace(b"evt_1", b"evt_2"), header)


class StripeWebhookViewTests(TestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.customer = make_customer()
        self.order = create_order([OrderLine(make_digital_product().pk, 1)], customer_account=self.customer)
        self.payment = self.order.payments.get()
        Payment.objects.filter(pk=self.payment.pk).update(gateway_reference="cs_hook")

    def _post(self, event: dict):
        request = self.factory.post(
            "/api/webhooks/stripe/",
            data=json.dumps(event),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="t=1,v1=test",
        )
        with patch("storefront.webhooks.receiver._verify_webhook", return_value=event):
            return StripeWebhookView.as_view()(request)

    def _completed_event(self, event_id="evt_paid", payment_status="paid"):
        return {
            "id": event_id,
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_hook", "payment_status": payment_status, "payment_intent": "pi_hook"}},
        }

    def test_invalid_signature_returns_400(self):
        request = self.factory.post(
            "/api/webhooks/stripe/",
            data=b"{}",
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="t=1,v1=bad",
        )
        with patch(
            "storefront.webhooks.receiver._verify_webhook",
            side_effect=WebhookVerificationError("Bad signature"),
        ):
            response = StripeWebhookView.as_view()(request)
        self.assertEqual(response.status_code, 400)

    def test_paid_session_settles_payment(self):
        response = self._post(self._completed_event())

        self.assertEqual(response.status_code, 200)
        self.payment.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.PAID)
        self.assertEqual(self.payment.gateway_payment_intent_id, "pi_hook")
        self.assertEqual(self.order.status, Order.Status.PROCESSING)
        event = WebhookEvent.objects.get(event_id="evt_paid")
        self.assertEqual(event.status, WebhookEvent.Status.PROCESSED)

    def test_redelivery_is_replayed_safely(self):
        self._post(self._completed_event())
        self.order.refresh_from_db()
        paid_at = self.order.paid_at

        response = self._post(self._completed_event())

        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.paid_at, paid_at)
        self.assertEqual(WebhookEvent.objects.get(event_id="evt_paid").delivery_count, 2)

    def test_unpaid_completed_session_waits_for_async_result(self):
        self._post(self._completed_event(event_id="evt_wait", payment_status="unpaid"))

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.PENDING)
        self.assertEqual(WebhookEvent.objects.get(event_id="evt_wait").status, WebhookEvent.Status.IGNORED)

        self._post(
            {
                "id": "evt_async",
                "type": "checkout.session.async_payment_succeeded",
                "data": {"object": {"id": "cs_hook"}},
            }
        )
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.PAID)

    def test_async_failure_marks_payment_failed(self):
        self._post(
            {
                "id": "evt_fail",
                "type": "checkout.session.async_payment_failed",
                "data": {"object": {"id": "cs_hook"}},
            }
        )

        self.payment.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.FAILED)
        self.assertEqual(self.order.status, Order.Status.PENDING)

    def test_payment_intent_failure_records_gateway_message(self):
        Payment.objects.filter(pk=self.payment.pk).update(gateway_payment_intent_id="pi_declined")

        self._post(
            {
                "id": "evt_pi_fail",
                "type": "payment_intent.payment_failed",
                "data": {"object": {"id": "pi_declined", "last_payment_error": {"message": "Card declined"}}},
            }
        )

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.FAILED)
        self.assertEqual(self.payment.gateway_response, "Card declined")

    def test_unhandled_event_type_is_ignored(self):
        response = self._post({"id": "evt_other", "type": "customer.created", "data": {"object": {}}})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(WebhookEvent.objects.get(event_id="evt_other").status, WebhookEvent.Status.IGNORED)

    def test_handler_error_returns_500_for_retry(self):
        def explode(data):
            raise RuntimeError("database unavailable")

        with patch.dict(EVENT_HANDLERS, {"checkout.session.completed": explode}):
            response = self._post(self._completed_event(event_id="evt_boom"))

        self.assertEqual(response.status_code, 500)
        event = WebhookEvent.objects.get(event_id="evt_boom")
        self.assertEqual(event.status, WebhookEvent.Status.FAILED)
        self.assertIn("database unavailable", event.error_message)
