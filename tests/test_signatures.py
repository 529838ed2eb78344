import json
import time

import pytest

from core.exceptions import SignatureError, ValidationError
from helpers import hmac_hex, stripe_signature
from services.signatures import compute_signature, verify, verify_card_event

BODY = b'{"type":"charge:confirmed","data":{"id":"abc"}}'
SECRET = "shared-secret"


class TestHmacVerify:
    def test_valid_signature(self):
        assert verify(BODY, hmac_hex(BODY, SECRET), SECRET) is True

    def test_compute_signature_is_lowercase_hex(self):
        sig = compute_signature(BODY, SECRET)
        assert sig == sig.lower()
        assert len(sig) == 64

    def test_wrong_secret(self):
        assert verify(BODY, hmac_hex(BODY, "other"), SECRET) is False

    def test_tampered_body(self):
        sig = hmac_hex(BODY, SECRET)
        assert verify(BODY + b" ", sig, SECRET) is False

    @pytest.mark.parametrize("signature", [None, "", "not-hex", "0" * 64])
    def test_missing_or_garbage_signature(self, signature):
        assert verify(BODY, signature, SECRET) is False

    @pytest.mark.parametrize("secret", [None, ""])
    def test_missing_secret(self, secret):
        assert verify(BODY, hmac_hex(BODY, "x"), secret) is False


class TestCardEventVerify:
    def _body(self):
        return json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_1", "object": "payment_intent", "metadata": {"orderId": "o-1"}}},
        }).encode()

    def test_valid_header_returns_event(self):
        body = self._body()
        event = verify_card_event(body, stripe_signature(body, "whsec_x"), "whsec_x")
        assert event["type"] == "payment_intent.succeeded"

    def test_invalid_header(self):
        body = self._body()
        with pytest.raises(SignatureError):
            verify_card_event(body, stripe_signature(body, "whsec_other"), "whsec_x")

    def test_stale_timestamp_rejected(self):
        body = self._body()
        header = stripe_signature(body, "whsec_x", timestamp=int(time.time()) - 3600)
        with pytest.raises(SignatureError):
            verify_card_event(body, header, "whsec_x")

    def test_missing_header(self):
        with pytest.raises(SignatureError):
            verify_card_event(self._body(), None, "whsec_x")

    def test_missing_secret(self):
        body = self._body()
        with pytest.raises(SignatureError):
            verify_card_event(body, stripe_signature(body, "whsec_x"), "")

    def test_signed_but_unreadable_payload(self):
        body = b"not json"
        with pytest.raises(ValidationError):
            verify_card_event(body, stripe_signature(body, "whsec_x"), "whsec_x")
