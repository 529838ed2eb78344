import enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class Provider(str, enum.Enum):
    STRIPE = "stripe"
    COINBASE = "coinbase"
    NOWPAYMENTS = "nowpayments"

    @property
    def is_crypto(self) -> bool:
        return self is not Provider.STRIPE


class EventKind(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    DELAYED = "delayed"
    PARTIALLY_PAID = "partially_paid"
    UNKNOWN = "unknown"


class PaymentEvent(BaseModel):
    """Provider-neutral payment notification handed to the order state machine."""

    model_config = ConfigDict(frozen=True)

    provider: Provider
    kind: EventKind
    raw_type: str
    order_id: Optional[str] = None
    provider_object_id: Optional[str] = None
    raw_amount: Optional[str] = None


def _metadata_order_id(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    value = (metadata or {}).get("orderId")
    return str(value) if value not in (None, "") else None


# Card processor (Stripe)

STRIPE_EVENT_KINDS = {
    "payment_intent.succeeded": EventKind.SUCCEEDED,
    "payment_intent.payment_failed": EventKind.FAILED,
    "payment_intent.canceled": EventKind.CANCELED,
}


class StripeObject(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class StripeEventData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    object: StripeObject = Field(default_factory=StripeObject)


class StripeWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    data: StripeEventData = Field(default_factory=StripeEventData)

    @field_validator("data", mode="before")
    @classmethod
    def null_data_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_event(self) -> PaymentEvent:
        obj = self.data.object
        return PaymentEvent(
            provider=Provider.STRIPE,
            kind=STRIPE_EVENT_KINDS.get(self.type, EventKind.UNKNOWN),
            raw_type=self.type,
            order_id=_metadata_order_id(obj.metadata),
            provider_object_id=obj.id,
            raw_amount=str(obj.amount) if obj.amount is not None else None,
        )


# Crypto processor A (Coinbase Commerce)

COINBASE_EVENT_KINDS = {
    "charge:confirmed": EventKind.SUCCEEDED,
    "charge:failed": EventKind.FAILED,
    "charge:delayed": EventKind.DELAYED,
}


class CoinbaseCharge(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    hosted_url: Optional[str] = None
    expires_at: Optional[str] = None
    pricing: Optional[Any] = None

    def local_amount(self) -> Optional[str]:
        # pricing.local.amount is informational; unexpected shapes read as absent
        local = self.pricing.get("local") if isinstance(self.pricing, dict) else None
        amount = local.get("amount") if isinstance(local, dict) else None
        return str(amount) if amount is not None else None


class CoinbaseWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    data: CoinbaseCharge = Field(default_factory=CoinbaseCharge)

    @field_validator("data", mode="before")
    @classmethod
    def null_data_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @model_validator(mode="before")
    @classmethod
    def unwrap_envelope(cls, values: Any) -> Any:
        # Coinbase delivers {"id", "event": {"type", "data"}}; flat bodies are accepted too
        if isinstance(values, dict) and "type" not in values and isinstance(values.get("event"), dict):
            return values["event"]
        return values

    def to_event(self) -> PaymentEvent:
        return PaymentEvent(
            provider=Provider.COINBASE,
            kind=COINBASE_EVENT_KINDS.get(self.type, EventKind.UNKNOWN),
            raw_type=self.type,
            order_id=_metadata_order_id(self.data.metadata),
            provider_object_id=self.data.id,
            raw_amount=self.data.local_amount(),
        )


# Crypto processor B (NOWPayments)

NOWPAYMENTS_EVENT_KINDS = {
    "confirmed": EventKind.SUCCEEDED,
    "failed": EventKind.FAILED,
    "partially_paid": EventKind.PARTIALLY_PAID,
}


class NowPaymentsIpn(BaseModel):
    model_config = ConfigDict(extra="allow")

    payment_status: str
    order_id: Optional[Union[str, int]] = None
    payment_id: Optional[Union[str, int]] = None
    pay_url: Optional[str] = None
    expiration_estimate_date: Optional[str] = None
    actually_paid: Optional[Union[str, float]] = None

    def to_event(self) -> PaymentEvent:
        return PaymentEvent(
            provider=Provider.NOWPAYMENTS,
            kind=NOWPAYMENTS_EVENT_KINDS.get(self.payment_status, EventKind.UNKNOWN),
            raw_type=self.payment_status,
            order_id=str(self.order_id) if self.order_id not in (None, "") else None,
            provider_object_id=str(self.payment_id) if self.payment_id is not None else None,
            raw_amount=str(self.actually_paid) if self.actually_paid is not None else None,
        )


class WebhookAck(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    accepted: bool = True
    provider: Provider
    event_kind: EventKind
    order_id: Optional[str] = None
    outcome: str
