import hashlib
import hmac
import json
import time

from services.blockchain import RegistrationResult

UNIQUE_CODE_PATTERN = r"^[A-Z]+-\d{8}-[0-9A-F]{8}$"


class FakeNotifier:
    """Records confirmation requests instead of emailing."""

    def __init__(self, error: Exception | None = None):
        self.sent = []
        self.error = error

    def send_order_confirmation(self, order):
        self.sent.append(order.id)
        if self.error:
            raise self.error


class FakeRegistrar:
    def __init__(self, result: RegistrationResult | None = None, error: Exception | None = None):
        self.calls = []
        self.result = result or RegistrationResult(success=True, transaction_id="0xabc123", network="ethereum")
        self.error = error

    def register(self, unique_code, metadata):
        self.calls.append((unique_code, metadata))
        if self.error:
            raise self.error
        return self.result


def hmac_hex(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def stripe_signature(body: bytes, secret: str, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + body
    return f"t={timestamp},v1={hmac_hex(signed, secret)}"


def stripe_event_body(order_id, event_type="payment_intent.succeeded", intent_id="pi_test_123") -> bytes:
    metadata = {"orderId": order_id} if order_id else {}
    return json.dumps({
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": intent_id, "object": "payment_intent", "amount": 2160, "metadata": metadata}},
    }).encode()


def coinbase_event_body(order_id, event_type="charge:confirmed", charge_id="CB-CHARGE-1") -> bytes:
    return json.dumps({
        "type": event_type,
        "data": {
            "id": charge_id,
            "metadata": {"orderId": order_id} if order_id else {},
            "hosted_url": "https://commerce.coinbase.com/charges/CB-CHARGE-1",
            "expires_at": "2026-10-19T12:00:00Z",
        },
    }).encode()


def nowpayments_body(order_id, status="confirmed", payment_id=5077125051) -> bytes:
    return json.dumps({
        "payment_id": payment_id,
        "payment_status": status,
        "order_id": order_id,
        "pay_url": "https://nowpayments.io/payment/?iid=5077125051",
        "actually_paid": 0.0004,
    }).encode()


