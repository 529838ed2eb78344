import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    CANCELED = "canceled"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    CRYPTO_PROVIDER_A = "crypto_provider_a"
    CRYPTO_PROVIDER_B = "crypto_provider_b"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    """One row per order; column names are the document field names other consumers read."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column("_id", String(36), primary_key=True, default=new_order_id)
    order_number: Mapped[str] = mapped_column("orderNumber", String(64), unique=True, index=True)
    user_id: Mapped[str] = mapped_column("userId", String(64), index=True)
    items: Mapped[list] = mapped_column("items", JSON, default=list)
    total: Mapped[int] = mapped_column("total", Integer)
    currency: Mapped[str] = mapped_column("currency", String(3), default="USD")
    payment_method: Mapped[str] = mapped_column("paymentMethod", String(32))
    billing_info: Mapped[dict | None] = mapped_column("billingInfo", JSON, nullable=True)
    shipping_info: Mapped[dict | None] = mapped_column("shippingInfo", JSON, nullable=True)

    status: Mapped[str] = mapped_column("status", String(30), default=OrderStatus.PENDING.value, index=True)
    webhook_status: Mapped[str | None] = mapped_column("webhookStatus", String(64), nullable=True)

    stripe_payment_intent_id: Mapped[str | None] = mapped_column("stripePaymentIntentId", String(255), nullable=True, index=True)
    crypto_invoice_id: Mapped[str | None] = mapped_column("cryptoInvoiceId", String(255), nullable=True, index=True)

    unique_code: Mapped[str | None] = mapped_column("uniqueCode", String(64), unique=True, nullable=True)
    blockchain_tx_id: Mapped[str | None] = mapped_column("blockchainTxId", String(255), nullable=True)

    version: Mapped[int] = mapped_column("version", Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column("createdAt", DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column("updatedAt", DateTime(timezone=True), default=utcnow)

    @property
    def provider_object_id(self) -> str | None:
        if self.payment_method == PaymentMethod.CARD.value:
            return self.stripe_payment_intent_id
        return self.crypto_invoice_id

    @property
    def customer_email(self) -> str | None:
        return (self.billing_info or {}).get("email")

    def __repr__(self) -> str:
        return f"<Order {self.order_number} status={self.status}>"
