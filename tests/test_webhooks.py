import json
import re

import pytest

from core.exceptions import SignatureError, ValidationError
from helpers import (
    UNIQUE_CODE_PATTERN,
    coinbase_event_body,
    hmac_hex,
    nowpayments_body,
    stripe_event_body,
    stripe_signature,
)
from schemas.webhook import CoinbaseWebhookEvent, EventKind, NowPaymentsIpn, StripeWebhookEvent
from services.secrets import SettingsSecretStore
from services.webhooks import (
    CoinbaseWebhookHandler,
    NowPaymentsWebhookHandler,
    StripeWebhookHandler,
    header_value,
)


class TestNormalization:
    """Provider payloads map onto the common event shape"""

    @pytest.mark.parametrize(
        "event_type, kind",
        [
            ("payment_intent.succeeded", EventKind.SUCCEEDED),
            ("payment_intent.payment_failed", EventKind.FAILED),
            ("payment_intent.canceled", EventKind.CANCELED),
            ("payment_intent.created", EventKind.UNKNOWN),
        ],
    )
    def test_stripe(self, event_type, kind):
        event = StripeWebhookEvent.model_validate(json.loads(stripe_event_body("o-1", event_type))).to_event()
        assert event.kind is kind
        assert event.order_id == "o-1"
        assert event.provider_object_id == "pi_test_123"
        assert event.raw_amount == "2160"

    @pytest.mark.parametrize(
        "event_type, kind",
        [
            ("charge:confirmed", EventKind.SUCCEEDED),
            ("charge:failed", EventKind.FAILED),
            ("charge:delayed", EventKind.DELAYED),
            ("charge:pending", EventKind.UNKNOWN),
        ],
    )
    def test_coinbase(self, event_type, kind):
        event = CoinbaseWebhookEvent.model_validate(json.loads(coinbase_event_body("o-1", event_type))).to_event()
        assert event.kind is kind
        assert event.order_id == "o-1"
        assert event.provider_object_id == "CB-CHARGE-1"

    def test_coinbase_envelope(self):
        body = {"id": "evt-1", "event": json.loads(coinbase_event_body("o-9"))}
        event = CoinbaseWebhookEvent.model_validate(body).to_event()
        assert event.kind is EventKind.SUCCEEDED
        assert event.order_id == "o-9"

    @pytest.mark.parametrize(
        "status, kind",
        [
            ("confirmed", EventKind.SUCCEEDED),
            ("failed", EventKind.FAILED),
            ("partially_paid", EventKind.PARTIALLY_PAID),
            ("waiting", EventKind.UNKNOWN),
        ],
    )
    def test_nowpayments(self, status, kind):
        event = NowPaymentsIpn.model_validate(json.loads(nowpayments_body("o-1", status))).to_event()
        assert event.kind is kind
        assert event.order_id == "o-1"
        assert event.provider_object_id == "5077125051"

    def test_missing_metadata(self):
        event = StripeWebhookEvent.model_validate(json.loads(stripe_event_body(None))).to_event()
        assert event.order_id is None

    def test_coinbase_amount_read_from_local_price(self):
        payload = json.loads(coinbase_event_body("o-1"))
        payload["data"]["pricing"] = {"local": {"amount": 21.6, "currency": "USD"}}
        assert CoinbaseWebhookEvent.model_validate(payload).to_event().raw_amount == "21.6"

        payload["data"]["pricing"] = {"local": "21.60"}
        assert CoinbaseWebhookEvent.model_validate(payload).to_event().raw_amount is None


class TestHandlers:
    """Dispatcher behaviour without the HTTP layer"""

    @pytest.fixture
    def secrets(self):
        return SettingsSecretStore()

    def test_header_lookup_is_case_insensitive(self):
        assert header_value({"X-CC-Webhook-Signature": "abc"}, "x-cc-webhook-signature") == "abc"
        assert header_value({}, "x-cc-webhook-signature") is None

    def test_missing_signature_header(self, secrets, state_machine, make_order, store):
        order = make_order(payment_method="crypto_provider_a")
        handler = CoinbaseWebhookHandler(secrets, state_machine)

        with pytest.raises(SignatureError):
            handler.handle(coinbase_event_body(order.id), {})

        assert store.get(order.id).status == "pending"

    def test_missing_secret_rejects(self, state_machine, make_order, store):
        class EmptySettings:
            COINBASE_WEBHOOK_SECRET = ""

        order = make_order(payment_method="crypto_provider_a")
        handler = CoinbaseWebhookHandler(SettingsSecretStore(EmptySettings()), state_machine)
        body = coinbase_event_body(order.id)

        with pytest.raises(SignatureError):
            handler.handle(body, {"x-cc-webhook-signature": hmac_hex(body, "")})

        assert store.get(order.id).status == "pending"

    def test_valid_coinbase_confirmation(self, secrets, state_machine, make_order, store, webhook_secrets):
        order = make_order(payment_method="crypto_provider_a")
        body = coinbase_event_body(order.id)

        ack = CoinbaseWebhookHandler(secrets, state_machine).handle(
            body, {"x-cc-webhook-signature": hmac_hex(body, webhook_secrets["coinbase"])}
        )

        assert ack.accepted is True
        assert ack.event_kind is EventKind.SUCCEEDED
        assert ack.outcome == "applied"
        assert store.get(order.id).status == "paid"

    def test_signed_garbage_is_rejected(self, secrets, state_machine, webhook_secrets):
        body = b"{not json"
        handler = NowPaymentsWebhookHandler(secrets, state_machine)
        with pytest.raises(ValidationError):
            handler.handle(body, {"x-nowpayments-sig": hmac_hex(body, webhook_secrets["nowpayments"])})

    def test_stripe_handler_uses_sdk_verification(self, secrets, state_machine, make_order, store, webhook_secrets):
        order = make_order()
        body = stripe_event_body(order.id)

        ack = StripeWebhookHandler(secrets, state_machine).handle(
            body, {"stripe-signature": stripe_signature(body, webhook_secrets["stripe"])}
        )

        assert ack.outcome == "applied"
        assert store.get(order.id).stripe_payment_intent_id == "pi_test_123"

    def test_stripe_plain_hmac_is_not_enough(self, secrets, state_machine, make_order, store, webhook_secrets):
        order = make_order()
        body = stripe_event_body(order.id)

        with pytest.raises(SignatureError):
            StripeWebhookHandler(secrets, state_machine).handle(
                body, {"stripe-signature": hmac_hex(body, webhook_secrets["stripe"])}
            )
        assert store.get(order.id).status == "pending"


class TestWebhookRoutes:
    """End-to-end deliveries through the FastAPI app"""

    def _create_order(self, client, payment_method="card"):
        response = client.post("/orders/", json={
            "userId": "user-1",
            "items": [{"sku": "X1", "title": "Tee", "price": 1000, "quantity": 2}],
            "total": 2160,
            "currency": "USD",
            "paymentMethod": payment_method,
            "billingInfo": {"name": "Ada", "email": "ada@example.com"},
        })
        assert response.status_code == 201
        body = response.json()
        assert body["order"]["status"] == "pending"
        return body["orderId"]

    def _post_stripe(self, client, body, secret):
        return client.post(
            "/webhooks/stripe",
            content=body,
            headers={"stripe-signature": stripe_signature(body, secret), "content-type": "application/json"},
        )

    def test_card_payment_confirmation(self, client, notifier, webhook_secrets):
        order_id = self._create_order(client)

        response = self._post_stripe(client, stripe_event_body(order_id), webhook_secrets["stripe"])

        assert response.status_code == 200
        assert response.json()["accepted"] is True
        order = client.get(f"/orders/{order_id}").json()["order"]
        assert order["status"] == "paid"
        assert order["webhookStatus"] == "payment_confirmed"
        assert re.match(UNIQUE_CODE_PATTERN, order["uniqueCode"])
        assert notifier.sent == [order_id]

    def test_redelivery_is_idempotent(self, client, notifier, webhook_secrets):
        order_id = self._create_order(client)
        body = stripe_event_body(order_id)

        self._post_stripe(client, body, webhook_secrets["stripe"])
        first_code = client.get(f"/orders/{order_id}").json()["order"]["uniqueCode"]
        second = self._post_stripe(client, body, webhook_secrets["stripe"])

        assert second.status_code == 200
        assert second.json()["outcome"] == "duplicate"
        assert client.get(f"/orders/{order_id}").json()["order"]["uniqueCode"] == first_code
        assert notifier.sent == [order_id]

    def test_invalid_coinbase_signature(self, client, notifier):
        order_id = self._create_order(client, payment_method="crypto_provider_a")
        body = coinbase_event_body(order_id)

        response = client.post(
            "/webhooks/coinbase",
            content=body,
            headers={"x-cc-webhook-signature": hmac_hex(body, "wrong-secret")},
        )

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert client.get(f"/orders/{order_id}").json()["order"]["status"] == "pending"
        assert notifier.sent == []

    def test_missing_signature_header(self, client):
        response = client.post("/webhooks/nowpayments", content=nowpayments_body("whatever"))
        assert response.status_code == 400

    def test_nowpayments_partial_payment(self, client, webhook_secrets):
        order_id = self._create_order(client, payment_method="crypto_provider_b")
        body = nowpayments_body(order_id, status="partially_paid")

        response = client.post(
            "/webhooks/nowpayments",
            content=body,
            headers={"x-nowpayments-sig": hmac_hex(body, webhook_secrets["nowpayments"])},
        )

        assert response.status_code == 200
        order = client.get(f"/orders/{order_id}").json()["order"]
        assert order["status"] == "pending"
        assert order["webhookStatus"] == "crypto_payment_partial"

    def test_missing_order_id_is_acknowledged(self, client, notifier, webhook_secrets):
        response = self._post_stripe(client, stripe_event_body(None), webhook_secrets["stripe"])

        assert response.status_code == 200
        assert response.json()["outcome"] == "unresolved"
        assert notifier.sent == []

    def test_unknown_event_type_is_acknowledged(self, client, webhook_secrets):
        order_id = self._create_order(client)

        response = self._post_stripe(
            client, stripe_event_body(order_id, event_type="charge.refunded"), webhook_secrets["stripe"]
        )

        assert response.status_code == 200
        assert response.json()["eventKind"] == "unknown"
        assert client.get(f"/orders/{order_id}").json()["order"]["status"] == "pending"

    def test_notification_failure_still_acknowledged(self, client, notifier, webhook_secrets):
        notifier.error = RuntimeError("smtp down")
        order_id = self._create_order(client)

        response = self._post_stripe(client, stripe_event_body(order_id), webhook_secrets["stripe"])

        assert response.status_code == 200
        assert client.get(f"/orders/{order_id}").json()["order"]["status"] == "paid"

    def test_ack_uses_camel_case_keys(self, client, webhook_secrets):
        order_id = self._create_order(client, payment_method="crypto_provider_b")
        body = nowpayments_body(order_id)

        response = client.post(
            "/webhooks/nowpayments",
            content=body,
            headers={"x-nowpayments-sig": hmac_hex(body, webhook_secrets["nowpayments"])},
        )

        assert response.status_code == 200
        assert response.json() == {
            "accepted": True,
            "provider": "nowpayments",
            "eventKind": "succeeded",
            "orderId": order_id,
            "outcome": "applied",
        }

    @pytest.mark.parametrize(
        "pricing",
        [
            {"local": "12.00"},
            {"local": {"amount": 21.6, "currency": "USD"}},
            "unexpected",
        ],
    )
    def test_coinbase_odd_pricing_still_confirms(self, client, webhook_secrets, pricing):
        order_id = self._create_order(client, payment_method="crypto_provider_a")
        payload = json.loads(coinbase_event_body(order_id))
        payload["data"]["pricing"] = pricing
        body = json.dumps(payload).encode()

        response = client.post(
            "/webhooks/coinbase",
            content=body,
            headers={"x-cc-webhook-signature": hmac_hex(body, webhook_secrets["coinbase"])},
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "applied"
        assert client.get(f"/orders/{order_id}").json()["order"]["status"] == "paid"

    def test_coinbase_null_data_is_unresolved(self, client, notifier, webhook_secrets):
        body = json.dumps({"type": "charge:confirmed", "data": None}).encode()

        response = client.post(
            "/webhooks/coinbase",
            content=body,
            headers={"x-cc-webhook-signature": hmac_hex(body, webhook_secrets["coinbase"])},
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "unresolved"
        assert notifier.sent == []
