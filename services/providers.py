"""
Payment provider adapters.

Each adapter turns an ``Order`` into one outbound creation call and returns a
``PaymentHandle``. Adapters do not touch the database and do not retry; the
caller persists ``external_id`` on the order before handing the checkout
details to the client.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import requests
import stripe

from core.config import Settings
from core.exceptions import ProviderError
from models.order import Order, PaymentMethod

logger = logging.getLogger(__name__)

COINBASE_BASE_URL = "https://api.commerce.coinbase.com"
COINBASE_API_VERSION = "2018-03-22"
NOWPAYMENTS_BASE_URL = "https://api.nowpayments.io/v1"


@dataclass(frozen=True)
class ProviderConfig:
    stripe_secret_key: str
    coinbase_api_key: str
    nowpayments_api_key: str
    nowpayments_pay_currency: str
    ipn_callback_url: str
    timeout: int = 20

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderConfig":
        return cls(
            stripe_secret_key=settings.STRIPE_SECRET_KEY,
            coinbase_api_key=settings.COINBASE_API_KEY,
            nowpayments_api_key=settings.NOWPAYMENTS_API_KEY,
            nowpayments_pay_currency=settings.NOWPAYMENTS_PAY_CURRENCY,
            ipn_callback_url=f"{settings.SITE_URL}/webhooks/nowpayments",
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )


@dataclass(frozen=True)
class PaymentHandle:
    external_id: str
    checkout_url: Optional[str] = None
    expires_at: Optional[str] = None
    client_secret: Optional[str] = None


def to_major_units(amount_minor: int) -> str:
    """2160 -> "21.60"."""
    return str((Decimal(amount_minor) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class PaymentProvider:
    name: str = ""
    method: PaymentMethod

    def __init__(self, config: ProviderConfig):
        self.config = config

    def create_payment(self, order: Order) -> PaymentHandle:
        raise NotImplementedError

    def _post_json(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            resp = requests.post(url, json=payload, headers=headers, timeout=self.config.timeout)
        except requests.RequestException as e:
            raise ProviderError(f"{self.name} request failed: {e}", provider=self.name) from e
        if not resp.ok:
            logger.warning("%s returned HTTP %s: %s", self.name, resp.status_code, resp.text[:500])
            raise ProviderError(f"{self.name} API error: {resp.status_code}", provider=self.name, status=resp.status_code)
        try:
            body = resp.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned a non-JSON response", provider=self.name) from e
        if not isinstance(body, dict):
            raise ProviderError(f"{self.name} returned an unexpected response shape", provider=self.name)
        return body


class StripeProvider(PaymentProvider):
    name = "stripe"
    method = PaymentMethod.CARD

    def create_payment(self, order: Order) -> PaymentHandle:
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.config.stripe_secret_key,
                amount=order.total,
                currency=order.currency.lower(),
                metadata={"orderId": order.id, "orderNumber": order.order_number},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.warning("Stripe payment intent creation failed for order %s: %s", order.id, e)
            raise ProviderError(f"Failed to create payment intent: {e}", provider=self.name) from e

        intent_id = getattr(intent, "id", None)
        client_secret = getattr(intent, "client_secret", None)
        if not intent_id or not client_secret:
            raise ProviderError("Stripe response missing payment intent id or client secret", provider=self.name)
        return PaymentHandle(external_id=intent_id, client_secret=client_secret)


class CoinbaseProvider(PaymentProvider):
    name = "coinbase"
    method = PaymentMethod.CRYPTO_PROVIDER_A

    def _headers(self) -> Dict[str, str]:
        return {
            "X-CC-Api-Key": self.config.coinbase_api_key,
            "X-CC-Version": COINBASE_API_VERSION,
            "Content-Type": "application/json",
        }

    def create_payment(self, order: Order) -> PaymentHandle:
        payload = {
            "name": f"Order {order.order_number}",
            "description": f"Payment for order {order.order_number}",
            "local_price": {
                "amount": to_major_units(order.total),
                "currency": order.currency.upper(),
            },
            "pricing_type": "fixed_price",
            "metadata": {"orderId": order.id, "orderNumber": order.order_number},
        }
        body = self._post_json(f"{COINBASE_BASE_URL}/charges", payload, self._headers())
        charge = body.get("data") or {}
        if not charge.get("id") or not charge.get("hosted_url"):
            raise ProviderError("Coinbase response missing charge id or hosted_url", provider=self.name)
        return PaymentHandle(
            external_id=charge["id"],
            checkout_url=charge["hosted_url"],
            expires_at=charge.get("expires_at"),
        )


class NowPaymentsProvider(PaymentProvider):
    name = "nowpayments"
    method = PaymentMethod.CRYPTO_PROVIDER_B

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.config.nowpayments_api_key,
            "Content-Type": "application/json",
        }

    def create_payment(self, order: Order) -> PaymentHandle:
        payload = {
            "price_amount": to_major_units(order.total),
            "price_currency": order.currency.lower(),
            "pay_currency": self.config.nowpayments_pay_currency,
            "order_id": order.id,
            "order_description": f"Payment for order {order.order_number}",
            "ipn_callback_url": self.config.ipn_callback_url,
        }
        body = self._post_json(f"{NOWPAYMENTS_BASE_URL}/payment", payload, self._headers())
        payment_id = body.get("payment_id")
        if payment_id is None or not body.get("pay_url"):
            raise ProviderError("NOWPayments response missing payment_id or pay_url", provider=self.name)
        return PaymentHandle(
            external_id=str(payment_id),
            checkout_url=body["pay_url"],
            expires_at=body.get("expiration_estimate_date"),
        )


_PROVIDER_CLASSES = (StripeProvider, CoinbaseProvider, NowPaymentsProvider)


class ProviderRegistry:
    """Adapters built once from a single ``ProviderConfig``."""

    def __init__(self, config: ProviderConfig, providers: Dict[PaymentMethod, PaymentProvider] | None = None):
        self._providers = providers or {cls.method: cls(config) for cls in _PROVIDER_CLASSES}

    def for_method(self, method: str | PaymentMethod) -> PaymentProvider:
        return self._providers[PaymentMethod(method)]
